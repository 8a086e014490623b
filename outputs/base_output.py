import logging
from abc import ABC, abstractmethod
from typing import List
from config.settings import ConfigManager
from models.base_models import FindingStatus, ReportFinding, ScanReport


class BaseOutput(ABC):
    """
    Renders a finished ScanReport. Outputs are loaded by module name from the
    `outputs` config list and must expose their class as `__plugin__`.
    """

    def __init__(self, config_manager: ConfigManager):
        self.config = config_manager
        self.settings = config_manager.get_output_settings()
        self.logger = logging.getLogger(self.__class__.__name__)

    def visible_findings(self, results: ScanReport) -> List[ReportFinding]:
        """Findings to display; passing ones are dropped when show_passing is off."""
        if self.settings.show_passing:
            return results.findings
        return [finding for finding in results.findings if finding.status != FindingStatus.OK]

    @abstractmethod
    def render(self, results: ScanReport):
        """
        Called once per scan, after stats and the integrity hash are final.
        Must not modify the report; a failure here is logged by the engine
        and never changes the scan outcome.
        """
        pass
