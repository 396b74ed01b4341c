"""G-code metadata extraction for consumption logging.

Slicers write a summary of the print into G-code comments: material type,
color, filament used in grams and/or length, and estimated print time. This
module reads those comments for PrusaSlicer, OrcaSlicer / Bambu Studio and
Cura output. When a file carries no usage summary, the extruded length is
summed from the moves themselves.
"""

import math
import re
from dataclasses import asdict, dataclass

# Default filament properties
DEFAULT_FILAMENT_DIAMETER = 1.75  # mm
DEFAULT_FILAMENT_DENSITY = 1.24  # g/cm³ (PLA)

_SLICER_MARKERS = (
    ("prusaslicer", "PrusaSlicer"),
    ("orcaslicer", "OrcaSlicer"),
    ("bambustudio", "BambuStudio"),
    ("superslicer", "SuperSlicer"),
    ("cura", "Cura"),
    ("simplify3d", "Simplify3D"),
)

# "; key = value" comments (Prusa/Orca/Bambu) and ";KEY:value" comments (Cura)
_KV_EQUALS = re.compile(r"^;\s*([^=:]+?)\s*=\s*(.*)$")
_KV_COLON = re.compile(r"^;\s*([A-Za-z][A-Za-z _\[\]]*?)\s*:\s*(.*)$")
_NUMBER = re.compile(r"-?\d+(?:\.\d+)?")
_HEX_COLOR = re.compile(r"#?([0-9A-Fa-f]{6})(?:[0-9A-Fa-f]{2})?")


@dataclass
class GcodeMetadata:
    slicer: str | None = None
    material_type: str | None = None
    color: str | None = None  # #RRGGBB
    used_filament_g: float | None = None
    used_filament_m: float | None = None
    print_time: str | None = None
    model_name: str | None = None

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class GcodeParseResult:
    success: bool
    metadata: GcodeMetadata
    error: str | None = None


def mm_to_grams(
    length_mm: float,
    diameter_mm: float = DEFAULT_FILAMENT_DIAMETER,
    density_g_cm3: float = DEFAULT_FILAMENT_DENSITY,
) -> float:
    """Convert filament length in mm to weight in grams.

    Uses the formula: mass = volume × density
    where volume = π × r² × length
    """
    radius_cm = (diameter_mm / 2) / 10  # Convert mm to cm
    length_cm = length_mm / 10  # Convert mm to cm
    volume_cm3 = math.pi * radius_cm * radius_cm * length_cm
    return volume_cm3 * density_g_cm3


def meters_to_grams(
    length_m: float,
    diameter_mm: float = DEFAULT_FILAMENT_DIAMETER,
    density_g_cm3: float = DEFAULT_FILAMENT_DENSITY,
) -> float:
    return mm_to_grams(length_m * 1000, diameter_mm, density_g_cm3)


def _sum_numbers(value: str) -> float | None:
    """Sum a per-extruder list like ``"1.20, 3.40"`` (or ``"1.2;3.4"``)."""
    numbers = [float(n) for n in _NUMBER.findall(value)]
    if not numbers:
        return None
    return sum(numbers)


def _first_item(value: str) -> str | None:
    for item in re.split(r"[;,]", value):
        item = item.strip().strip('"')
        if item:
            return item
    return None


def _normalize_color(value: str) -> str | None:
    first = _first_item(value)
    if not first:
        return None
    match = _HEX_COLOR.fullmatch(first)
    if not match:
        return None
    return f"#{match.group(1).upper()}"


def _detect_slicer(line: str) -> str | None:
    lowered = line.lower().replace(" ", "")
    for marker, name in _SLICER_MARKERS:
        if marker in lowered:
            return name
    return None


def sum_extrusion_mm(gcode_content: str) -> float:
    """Total extruded filament length in mm, from G0-G3 E values.

    Handles absolute (M82) and relative (M83) extrusion and G92 E resets.
    Retractions are not counted.
    """
    relative = False
    last_e = 0.0
    total = 0.0

    for line in gcode_content.splitlines():
        if ";" in line:
            line = line.split(";", 1)[0]
        parts = line.strip().split()
        if not parts:
            continue
        cmd = parts[0].upper()

        if cmd == "M82":
            relative = False
        elif cmd == "M83":
            relative = True
        elif cmd == "G92":
            for part in parts[1:]:
                if part.upper().startswith("E"):
                    try:
                        last_e = float(part[1:])
                    except ValueError:
                        pass  # Skip unparseable extruder resets
        elif cmd in ("G0", "G1", "G2", "G3"):
            for part in parts[1:]:
                if not part.upper().startswith("E"):
                    continue
                try:
                    e_value = float(part[1:])
                except ValueError:
                    continue  # Skip unparseable extrusion values
                if relative:
                    if e_value > 0:
                        total += e_value
                else:
                    if e_value > last_e:
                        total += e_value - last_e
                    last_e = e_value

    return total


def parse_gcode_metadata(gcode_content: str) -> GcodeParseResult:
    """Extract slicer summary metadata from G-code text."""
    metadata = GcodeMetadata()
    used_mm: float | None = None

    for raw_line in gcode_content.splitlines():
        line = raw_line.strip()
        if not line.startswith(";"):
            continue

        if metadata.slicer is None and ("generated" in line.lower() or "flavor" in line.lower()):
            metadata.slicer = _detect_slicer(line)

        kv = _KV_EQUALS.match(line) or _KV_COLON.match(line)
        if not kv:
            continue
        key = kv.group(1).strip().lower()
        value = kv.group(2).strip()

        if key in ("filament used [g]", "total filament used [g]", "total filament weight [g]"):
            grams = _sum_numbers(value)
            if grams is not None and (metadata.used_filament_g is None or key.startswith("total")):
                metadata.used_filament_g = grams
        elif key == "filament used [mm]":
            used_mm = _sum_numbers(value)
        elif key == "filament used [cm3]":
            continue
        elif key == "filament used":
            # Cura: ";Filament used: 1.23456m"
            meters = _sum_numbers(value)
            if meters is not None:
                metadata.used_filament_m = meters
        elif key in ("filament_type", "filament type"):
            metadata.material_type = _first_item(value)
        elif key in ("filament_colour", "filament_color", "extruder_colour"):
            if metadata.color is None:
                metadata.color = _normalize_color(value)
        elif key.startswith("estimated printing time") or key in ("total estimated time", "model printing time"):
            if metadata.print_time is None:
                metadata.print_time = value
        elif key == "time":
            # Cura: ";TIME:6666" in seconds
            seconds = _sum_numbers(value)
            if seconds is not None and metadata.print_time is None:
                hours, rest = divmod(int(seconds), 3600)
                metadata.print_time = f"{hours}h {rest // 60}m {rest % 60}s"
        elif key in ("mesh", "model_name", "printing object"):
            if metadata.model_name is None and value:
                metadata.model_name = value.rsplit("/", 1)[-1]

    if metadata.used_filament_m is None and used_mm is not None:
        metadata.used_filament_m = used_mm / 1000

    if metadata.used_filament_g is None and metadata.used_filament_m is None:
        extruded_mm = sum_extrusion_mm(gcode_content)
        if extruded_mm > 0:
            metadata.used_filament_m = extruded_mm / 1000

    if metadata.used_filament_g is None and metadata.used_filament_m is None:
        return GcodeParseResult(False, metadata, "No filament usage found in G-code")
    return GcodeParseResult(True, metadata)
