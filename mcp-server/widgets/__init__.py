from widgets.renderer import WIDGETS, WidgetRenderer, render

__all__ = ["WIDGETS", "WidgetRenderer", "render"]
