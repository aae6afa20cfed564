"""
Workflows module - Campaign curation and scheduled jobs.
"""
from workflows.base import CampaignWorkflow
from workflows.curation import CampaignCurationWorkflow, CurationReport

__all__ = [
    "CampaignWorkflow",
    "CampaignCurationWorkflow",
    "CurationReport",
]
