class StyleModule:
    """A family of watermark presets.

    Subclasses return their presets from ``get_preset_styles``. A module that
    needs more than a single ``drawtext`` overrides ``generate_filter``; the
    editor falls back to its default filter when that raises.
    """

    name = "base"

    def get_preset_styles(self) -> dict:
        return {}

    def generate_filter(self, settings: dict) -> str:
        raise NotImplementedError
