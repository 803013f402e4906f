"""Work info (telemetry snapshot) decoding module.

This module handles:
- The WorkInfo record returned by the getWorkInfo endpoint
- Mapping vendor JSON keys onto snake_case attributes
- Validating value types while decoding

Decoding rules:
- Unknown keys are ignored
- Missing keys and null values keep the zero default
- A value of the wrong JSON type is an error
"""

import json
import math
from dataclasses import dataclass, field, fields
from typing import Any, Dict, Union

from pdc_exporter.errors import PDCDecodeError


@dataclass(frozen=True)
class WorkTime:
    """Timestamp breakdown sent alongside each work info record."""
    date: int = 0
    hours: int = 0
    seconds: int = 0
    month: int = 0
    timezone_offset: int = 0
    year: int = 0
    minutes: int = 0
    time: int = 0  # epoch milliseconds
    day: int = 0


@dataclass(frozen=True)
class WorkInfo:
    """Point-in-time telemetry for one inverter.

    Numbered attributes (grid_frequency_1, grid_frequency_2, ...) refer to the
    two outputs/lines of a split-phase or parallel system.
    """
    serial_no: str = ""

    grid_frequency_1: float = 0.0
    grid_frequency_2: float = 0.0
    grid_voltage_1: float = 0.0
    grid_voltage_2: float = 0.0

    pv_input_voltage_1: float = 0.0
    pv_input_voltage_2: float = 0.0
    pv_input_current_1: float = 0.0
    pv_input_current_2: float = 0.0
    total_pv_input_power: float = 0.0

    ac_output_voltage_1: float = 0.0
    ac_output_voltage_2: float = 0.0
    ac_output_frequency_1: float = 0.0
    ac_output_frequency_2: float = 0.0
    ac_output_apparent_power_1: float = 0.0
    ac_output_apparent_power_2: float = 0.0
    ac_output_active_power_1: float = 0.0
    ac_output_active_power_2: float = 0.0

    output_load_percent_1: float = 0.0
    output_load_percent_2: float = 0.0
    total_output_load_percent: float = 0.0

    battery_voltage: float = 0.0
    battery_capacity: float = 0.0
    battery_charge_current: float = 0.0
    total_battery_charge_current: float = 0.0
    battery_discharge_current: float = 0.0

    total_ac_output_apparent_power: float = 0.0
    total_ac_output_active_power: float = 0.0

    charge_source: str = ""
    load_source: str = ""
    work_mode: str = ""
    machine_type: str = ""

    has_load_1: bool = False
    has_load_2: bool = False
    ac_charge_on_1: bool = False
    ac_charge_on_2: bool = False
    charge_on: bool = False
    scc_charge_on_1: bool = False
    scc_charge_on_2: bool = False
    line_loss_1: bool = False
    line_loss_2: bool = False
    overload: bool = False

    timestr: str = ""
    data_id: float = 0.0
    time: WorkTime = field(default_factory=WorkTime)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "WorkInfo":
        """Build a WorkInfo from a decoded JSON object.

        Args:
            data: Decoded getWorkInfo response

        Returns:
            WorkInfo populated from the known keys

        Raises:
            PDCDecodeError: If a known key holds a value of the wrong type
        """
        values = _decode_object(data, WORK_INFO_KEYS, _WORK_INFO_TYPES, "workInfo")

        raw_time = data.get("time")
        if raw_time is not None:
            if not isinstance(raw_time, dict):
                raise PDCDecodeError(
                    f"workInfo.time: expected object, got {type(raw_time).__name__}"
                )
            values["time"] = WorkTime(
                **_decode_object(raw_time, WORK_TIME_KEYS, _WORK_TIME_TYPES, "workInfo.time")
            )

        return cls(**values)


# JSON key -> attribute name. The attribute's declared type drives validation.
WORK_INFO_KEYS: Dict[str, str] = {
    "serialNo": "serial_no",
    "gridFrequency": "grid_frequency_1",
    "gridFrequency2": "grid_frequency_2",
    "gridVoltage": "grid_voltage_1",
    "gridVoltage2": "grid_voltage_2",
    "pvInputVoltage1": "pv_input_voltage_1",
    "pvInputVoltage2": "pv_input_voltage_2",
    "pvInputCurrent1": "pv_input_current_1",
    "pvInputCurrent2": "pv_input_current_2",
    "totalPvInputPower": "total_pv_input_power",
    "acOutputVoltage": "ac_output_voltage_1",
    "acOutputVoltage2": "ac_output_voltage_2",
    "acOutputFrequency": "ac_output_frequency_1",
    "acOutputFrequency2": "ac_output_frequency_2",
    "acOutputApparentPower": "ac_output_apparent_power_1",
    "acOutputApparentPower2": "ac_output_apparent_power_2",
    "acOutputActivePower": "ac_output_active_power_1",
    "acOutputActivePower2": "ac_output_active_power_2",
    "outputLoadPercent": "output_load_percent_1",
    "outputLoadPercent2": "output_load_percent_2",
    "totalOutputLoadPercent": "total_output_load_percent",
    "batteryVoltage": "battery_voltage",
    "batteryCapacity": "battery_capacity",
    "batteryChgCurrent": "battery_charge_current",
    "totalChargingCurrent": "total_battery_charge_current",
    "batteryDischgCurrent": "battery_discharge_current",
    "totalAcOutputApparentPower": "total_ac_output_apparent_power",
    "totalAcOutputActivePower": "total_ac_output_active_power",
    "chargeSource": "charge_source",
    "loadSource": "load_source",
    "workMode": "work_mode",
    "machineType": "machine_type",
    "hasLoad": "has_load_1",
    "hasLoad2": "has_load_2",
    "ACchargeOn": "ac_charge_on_1",
    "ACchargeOn2": "ac_charge_on_2",
    "chargeOn": "charge_on",
    "SCCchargeOn": "scc_charge_on_1",
    "SCCchargeOn2": "scc_charge_on_2",
    "lineLoss": "line_loss_1",
    "lineLoss2": "line_loss_2",
    "overLoad": "overload",
    "timestr": "timestr",
    "dataID": "data_id",
}

WORK_TIME_KEYS: Dict[str, str] = {
    "date": "date",
    "hours": "hours",
    "seconds": "seconds",
    "month": "month",
    "timezoneOffset": "timezone_offset",
    "year": "year",
    "minutes": "minutes",
    "time": "time",
    "day": "day",
}

_WORK_INFO_TYPES = {f.name: f.type for f in fields(WorkInfo)}
_WORK_TIME_TYPES = {f.name: f.type for f in fields(WorkTime)}


def _coerce(value: Any, expected: type, where: str) -> Union[str, float, int, bool]:
    # bool is a subclass of int, so it never counts as a number here
    if expected is bool:
        if isinstance(value, bool):
            return value
    elif expected is float:
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            try:
                number = float(value)
            except OverflowError:
                raise PDCDecodeError(f"{where}: number out of range") from None
            if not math.isfinite(number):
                raise PDCDecodeError(f"{where}: number out of range")
            return number
    elif expected is int:
        if isinstance(value, int) and not isinstance(value, bool):
            return value
        if isinstance(value, float) and value.is_integer():
            return int(value)
    elif expected is str:
        if isinstance(value, str):
            return value

    raise PDCDecodeError(
        f"{where}: expected {expected.__name__}, got {type(value).__name__}"
    )


def _decode_object(
    data: Dict[str, Any],
    keys: Dict[str, str],
    types: Dict[str, Any],
    where: str
) -> Dict[str, Any]:
    values: Dict[str, Any] = {}

    for key, attr in keys.items():
        value = data.get(key)
        if value is None:
            continue
        values[attr] = _coerce(value, types[attr], f"{where}.{key}")

    return values


def _reject_constant(name: str) -> None:
    raise PDCDecodeError(f"Invalid JSON in work info response: {name} is not a number")


def parse_work_info(body: Union[bytes, str]) -> WorkInfo:
    """Decode a getWorkInfo response body.

    Args:
        body: Raw JSON response body

    Returns:
        Decoded WorkInfo

    Raises:
        PDCDecodeError: If the body is not a JSON object of the expected shape
    """
    try:
        data = json.loads(body, parse_constant=_reject_constant)
    except (ValueError, UnicodeDecodeError) as e:
        raise PDCDecodeError(f"Invalid JSON in work info response: {e}") from e

    if not isinstance(data, dict):
        raise PDCDecodeError(
            f"Expected a JSON object for work info, got {type(data).__name__}"
        )

    return WorkInfo.from_dict(data)
