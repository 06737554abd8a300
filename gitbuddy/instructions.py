"""Prompt templates.

Templates ship in ``gitbuddy/instructions/``. A file of the same name in
``~/.gitbuddy/instructions/`` replaces the bundled one.
"""

from pathlib import Path

BUNDLED_DIR = Path(__file__).resolve().parent / "instructions"
PERSONAL_DIR = Path("~/.gitbuddy/instructions").expanduser()


class _Placeholders(dict):
    def __missing__(self, key: str) -> str:
        return "{" + key + "}"


class InstructionLoader:
    """Find prompt templates and fill in their ``{placeholders}``."""

    def __init__(self, personal_dir: Path | str | None = None, bundled_dir: Path | str | None = None):
        self.personal_dir = Path(personal_dir).expanduser() if personal_dir else PERSONAL_DIR
        self.bundled_dir = Path(bundled_dir) if bundled_dir else BUNDLED_DIR

    def load(self, name: str) -> str:
        """Template text, personal copy first.

        Raises:
            FileNotFoundError: neither directory has the template
        """
        for directory in (self.personal_dir, self.bundled_dir):
            path = directory / name
            if path.is_file():
                return path.read_text(encoding="utf-8").strip()
        raise FileNotFoundError(f"Prompt template not found: {name}")

    def render(self, name: str, **values: object) -> str:
        # Unknown placeholders stay as written.
        return self.load(name).format_map(_Placeholders({key: str(value) for key, value in values.items()}))


_loader: InstructionLoader | None = None


def get_instruction_loader() -> InstructionLoader:
    """Get the shared loader."""
    global _loader
    if _loader is None:
        _loader = InstructionLoader()
    return _loader
