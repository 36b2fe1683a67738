from mediabot.editor import escape_drawtext, position_expr, resolve_font
from mediabot.styles.base import StyleModule


class NeonStyles(StyleModule):
    """Glowing text: a translucent coloured border drawn under a crisp core."""

    name = "neon"

    def get_preset_styles(self):
        return {
            "glow": {
                "text": "Samuel",
                "font": "DejaVuSans-Bold",
                "fontSize": 28,
                "color": "white",
                "glowColor": "cyan",
                "opacity": 0.7,
                "position": "bottom-right",
                "rotation": -6,
                "effect": "glow",
            },
            "pink": {
                "text": "Samuel",
                "font": "DejaVuSans-Bold",
                "fontSize": 30,
                "color": "white",
                "glowColor": "magenta",
                "opacity": 0.75,
                "position": "top-right",
                "rotation": 0,
                "effect": "glow",
            },
        }

    def generate_filter(self, settings):
        text = escape_drawtext(settings.get("text") or "")
        size = settings.get("fontSize") or settings.get("size") or 28
        opacity = settings.get("opacity", 0.7)
        glow = settings.get("glowColor", "cyan")
        color = settings.get("color", "white")
        font = resolve_font(settings.get("font"))

        parts = [f"text='{text}'", f"fontsize={size}", position_expr(settings.get("position"))]
        if font:
            parts.append(f"fontfile='{font}'")
        base = ":".join(parts)
        return (
            f"drawtext={base}:fontcolor={glow}@{opacity}"
            f":borderw=6:bordercolor={glow}@{round(opacity / 2, 2)},"
            f"drawtext={base}:fontcolor={color}@{opacity}"
        )
