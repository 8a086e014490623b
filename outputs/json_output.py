from pathlib import Path
from outputs.base_output import BaseOutput
from models.base_models import ScanReport


class JSONOutput(BaseOutput):

    def __init__(self, config_manager):
        super().__init__(config_manager)
        self.output_file = Path(self.settings.json_output_file)


    def render(self, results: ScanReport):
        """Writes the full scan report, including source traces, as JSON."""
        # Prepare the output directory
        self.output_file.parent.mkdir(parents=True, exist_ok=True)

        # Serialize the Pydantic model directly
        with open(self.output_file, 'w', encoding='utf-8') as f:
            f.write(results.model_dump_json(indent=2))

        self.logger.info(f"Raw JSON results saved: {self.output_file.resolve()}")


__plugin__ = JSONOutput
