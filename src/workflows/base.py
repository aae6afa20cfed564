"""
Contains base class for campaign workflows
"""
from abc import ABC, abstractmethod
from typing import Any


class CampaignWorkflow(ABC):
    """
    Drives one multi-stage job against the campaign of a given date.
    """

    name: str

    @abstractmethod
    async def run(self, campaign_date: str) -> Any:
        """
        Execute the workflow for the campaign of ``campaign_date``.
        Failures scoped to a source or an item are absorbed; anything else
        propagates to the caller.
        """
        raise NotImplementedError
