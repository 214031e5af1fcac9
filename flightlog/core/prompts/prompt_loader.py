from pathlib import Path
import yaml


class PromptLoader:
    @staticmethod
    def load_prompt(relative_path: str) -> str:
        """
        Loads the 'SYSTEM_PROMPT' string from a YAML file next to this module.
        """
        base_path = Path(__file__).resolve().parent
        file_path = base_path / relative_path

        if not file_path.exists():
            raise FileNotFoundError(f"Prompt file missing: {file_path}")

        with file_path.open("r", encoding="utf-8") as f:
            data = yaml.safe_load(f)

        prompt_template = data.get("SYSTEM_PROMPT")

        if not prompt_template:
            raise ValueError(f"key 'SYSTEM_PROMPT' missing in {file_path}")

        return prompt_template
