# System info normalizer
#
# Freebox models report thermal and fan data differently:
#   - Revolution / Mini 4K (API < 8): flat fields on the system object
#     (temp_cpum, temp_cpub, temp_sw, fan_rpm)
#   - Delta / Pop / Ultra (API >= 8): "sensors" and "fans" arrays of
#     {id, name, value}, with model-specific sensor ids
#
# normalize_system_info() maps both onto the canonical system_status keys
# the dashboard understands.

from typing import Any, Dict, Iterable, Mapping

SYSTEM_STATUS_FIELDS = (
    "temp_cpu0",
    "temp_cpu1",
    "temp_cpu2",
    "temp_cpu3",
    "temp_cpum",
    "temp_cpub",
    "temp_sw",
    "fan_rpm",
    "uptime_val",
)

# Sensor/fan id -> canonical key
_SENSOR_ALIASES: Dict[str, str] = {
    "temp_cpum": "temp_cpum",
    "temp_cpu_cp_master": "temp_cpum",
    "temp_cpu": "temp_cpum",
    "temp_cpub": "temp_cpub",
    "temp_cpu_ap": "temp_cpub",
    "temp_cpu_cp_slave": "temp_cpub",
    "temp_sw": "temp_sw",
    "temp_t1": "temp_sw",
    "temp_cpu0": "temp_cpu0",
    "temp_cpu1": "temp_cpu1",
    "temp_cpu2": "temp_cpu2",
    "temp_cpu3": "temp_cpu3",
}

_FAN_ALIASES: Dict[str, str] = {
    "fan_rpm": "fan_rpm",
    "fan0_speed": "fan_rpm",
    "fan0": "fan_rpm",
}


def _collect(entries: Any, aliases: Mapping[str, str], out: Dict[str, Any]) -> None:
    if not isinstance(entries, Iterable) or isinstance(entries, (str, bytes, dict)):
        return
    for entry in entries:
        if not isinstance(entry, dict):
            continue
        key = aliases.get(str(entry.get("id", "")))
        value = entry.get("value")
        # First sensor wins when several ids alias to the same key
        if key and value is not None and key not in out:
            out[key] = value


def normalize_system_info(raw: Mapping[str, Any]) -> Dict[str, Any]:
    """Map a raw /system/ result onto the canonical system_status shape.

    Flat fields take precedence over the sensor arrays. Keys with no value
    are omitted rather than set to None.
    """
    normalized: Dict[str, Any] = {}

    for key in SYSTEM_STATUS_FIELDS:
        value = raw.get(key)
        if value is not None:
            normalized[key] = value

    from_arrays: Dict[str, Any] = {}
    _collect(raw.get("sensors"), _SENSOR_ALIASES, from_arrays)
    _collect(raw.get("fans"), _FAN_ALIASES, from_arrays)
    for key, value in from_arrays.items():
        normalized.setdefault(key, value)

    return normalized
