from mediabot.editor import escape_drawtext, position_expr, resolve_font
from mediabot.styles.base import StyleModule


class GlassStyles(StyleModule):
    """Text on a translucent box, like a frosted glass label."""

    name = "glass"

    def get_preset_styles(self):
        return {
            "frost": {
                "text": "Samuel",
                "font": "DejaVuSans",
                "fontSize": 26,
                "color": "white",
                "glassColor": "white@0.25",
                "opacity": 0.9,
                "position": "bottom-left",
                "rotation": 0,
                "effect": "frost",
            },
            "smoke": {
                "text": "Samuel",
                "font": "DejaVuSans-Bold",
                "fontSize": 24,
                "color": "white",
                "glassColor": "black@0.4",
                "opacity": 0.85,
                "position": "top-left",
                "rotation": 0,
                "effect": "smoke",
            },
            "banner": {
                "text": "Samuel",
                "font": "DejaVuSans-Bold",
                "fontSize": 34,
                "color": "white",
                "glassColor": "black@0.5",
                "opacity": 1.0,
                "position": "center",
                "rotation": 0,
                "effect": "banner",
            },
        }

    def generate_filter(self, settings):
        text = escape_drawtext(settings.get("text") or "")
        size = settings.get("fontSize") or settings.get("size") or 26
        parts = [
            f"text='{text}'",
            f"fontsize={size}",
            f"fontcolor={settings.get('color', 'white')}@{settings.get('opacity', 0.9)}",
            "box=1",
            f"boxcolor={settings.get('glassColor', 'white@0.25')}",
            "boxborderw=12",
            position_expr(settings.get("position")),
        ]
        font = resolve_font(settings.get("font"))
        if font:
            parts.append(f"fontfile='{font}'")
        return "drawtext=" + ":".join(parts)
