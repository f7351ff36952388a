"""docflow - Document Job Admission and Reclamation

Admission control, per-user distributed locking and status tracking for
long-running document-processing jobs, plus the account reclamation sweep.
"""

__version__ = "0.1.0"
