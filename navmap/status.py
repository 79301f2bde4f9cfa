from dataclasses import dataclass
from typing import Any, Callable

from navmap.core.viewport_state import ViewportState

CARDINALS = ("N", "NE", "E", "SE", "S", "SW", "W", "NW")


@dataclass
class StatusField:
    """
    A labelled value in a status line.

    :ivar label: The label/name of the status field.
    :type label: str
    :ivar fmt: The format string used for formatting the field's value.
    :type fmt: str
    :ivar formatter: Callable function to format the field value. Defaults to a formatter
        using the provided `fmt` string, unless explicitly specified.
    :type formatter: Callable[[Any], str]
    """
    label: str
    fmt: str = "{}"
    formatter: Callable[[Any], str] = None

    def __post_init__(self):
        if self.formatter is None:
            self.formatter = lambda v, fmt=self.fmt: fmt.format(v)

    def render(self, value: Any) -> str:
        text = self.formatter(value)
        return f"{self.label}: {text}" if self.label else text


def cardinal_direction(heading: float) -> str:
    """Return the 8-point compass direction for a heading in degrees."""
    index = int(((heading % 360.0) + 22.5) // 45.0) % 8
    return CARDINALS[index]


def format_heading(heading: float) -> str:
    """Format a heading as degrees with its compass direction, e.g. '92.0° E'."""
    return f"{heading:.1f}° {cardinal_direction(heading)}"


def format_north_type(is_true_north: bool) -> str:
    return "True North" if is_true_north else "Magnetic North"


def format_status_line(fields: dict[str, StatusField], **values: Any) -> str:
    """
    Join the given values into a single status line, in field order.
    Values without a field, and fields without a value, are skipped.
    """
    return " | ".join(
        field.render(values[key]) for key, field in fields.items() if key in values
    )


def viewport_status(state: ViewportState) -> str:
    return format_status_line(
        VIEWPORT_FIELDS,
        scale=state.scale,
        offset=state.offset,
        rotation=state.rotation_degrees,
    )


COMPASS_FIELDS = {
    "raw": StatusField(label="Raw", fmt="{:.1f}°"),
    "smoothed": StatusField(label="Smoothed", fmt="{:.1f}°"),
    "accuracy": StatusField(label="Accuracy", fmt="{:.1f}°"),
    "north": StatusField(label="", formatter=format_north_type),
}

VIEWPORT_FIELDS = {
    "scale": StatusField(label="Zoom", fmt="{:.2f}x"),
    "offset": StatusField(label="Pan", formatter=lambda v: f"({v[0]:.0f}, {v[1]:.0f})"),
    "rotation": StatusField(label="Rotation", formatter=format_heading),
}
