"""Admission, status and reclamation services."""

from docflow.services.admission import AdmissionController
from docflow.services.janitor import ReclamationSweep, SweepResult
from docflow.services.scheduler import SweepScheduler

__all__ = ["AdmissionController", "ReclamationSweep", "SweepResult", "SweepScheduler"]
