from mediabot.styles.base import StyleModule


class ClassicStyles(StyleModule):
    name = "classic"

    def get_preset_styles(self):
        return {
            "corner": {
                "text": "Samuel",
                "font": "DejaVuSans-Bold",
                "fontSize": 24,
                "color": "white",
                "opacity": 0.48,
                "position": "bottom-right",
                "rotation": -6,
                "effect": "shadow",
            },
            "stamp": {
                "text": "Samuel",
                "font": "DejaVuSans",
                "fontSize": 32,
                "color": "white",
                "opacity": 0.35,
                "position": "center",
                "rotation": 0,
                "effect": "shadow",
            },
            "caption": {
                "text": "Samuel",
                "font": "DejaVuSans",
                "fontSize": 22,
                "color": "yellow",
                "opacity": 0.8,
                "position": "top-left",
                "rotation": 0,
                "effect": "shadow",
            },
        }
