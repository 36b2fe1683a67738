from mediabot.styles.base import StyleModule
from mediabot.styles.classic import ClassicStyles
from mediabot.styles.glass import GlassStyles
from mediabot.styles.neon import NeonStyles
from mediabot.utils import logger

DEFAULT_WATERMARK = {
    "text": "Samuel",
    "font": "DejaVuSans",
    "fontSize": 24,
    "color": "white",
    "opacity": 0.48,
    "position": "bottom-right",
    "rotation": -6,
    "effect": "glow",
}

STYLE_MODULES = (ClassicStyles, NeonStyles, GlassStyles)


class StyleRegistry:
    """All watermark presets, keyed ``{module}_{preset}``."""

    def __init__(self, module_classes=STYLE_MODULES):
        self.modules = {}
        self._styles = {}
        for cls in module_classes:
            module = cls()
            self.modules[module.name] = module
            try:
                presets = module.get_preset_styles()
            except Exception as e:
                logger.error(f"Failed to load style module {module.name}: {e}")
                continue
            for preset_name, preset in presets.items():
                self._styles[f"{module.name}_{preset_name}"] = {
                    **preset,
                    "module": module.name,
                    "style_class": module,
                    "original_name": preset_name,
                }
        logger.info(f"Loaded {len(self._styles)} watermark styles from {len(self.modules)} modules")

    def all_styles(self):
        return dict(self._styles)

    def get(self, full_name):
        style = self._styles.get(full_name)
        return dict(style) if style else None

    def module_styles(self, module_name):
        return {
            name: dict(style)
            for name, style in self._styles.items()
            if style["module"] == module_name
        }

    def count(self):
        return len(self._styles)


__all__ = ["DEFAULT_WATERMARK", "STYLE_MODULES", "StyleModule", "StyleRegistry"]
