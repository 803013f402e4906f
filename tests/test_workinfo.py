import json

import pytest

from pdc_exporter.errors import PDCDecodeError
from pdc_exporter.workinfo import WORK_INFO_KEYS, WorkInfo, WorkTime, parse_work_info


SAMPLE = {
    "serialNo": "SN1",
    "gridFrequency": 50.02,
    "gridVoltage": 231.4,
    "pvInputVoltage1": 312.0,
    "totalPvInputPower": 1840,
    "acOutputActivePower": 760,
    "batteryVoltage": 53.2,
    "batteryCapacity": 87,
    "totalChargingCurrent": 21.5,
    "chargeSource": "Solar",
    "loadSource": "Battery",
    "workMode": "Battery Mode",
    "machineType": "VMIII",
    "hasLoad": True,
    "overLoad": False,
    "SCCchargeOn": True,
    "timestr": "2024-05-01 12:00:00",
    "dataID": 123456,
    "time": {"year": 124, "month": 4, "date": 1, "hours": 12, "time": 1714564800000},
    "somethingNew": {"ignored": True},
}


def test_known_fields_are_mapped():
    info = parse_work_info(json.dumps(SAMPLE).encode())

    assert info.serial_no == "SN1"
    assert info.grid_frequency_1 == 50.02
    assert info.grid_voltage_1 == 231.4
    assert info.total_pv_input_power == 1840.0
    assert isinstance(info.total_pv_input_power, float)
    assert info.battery_capacity == 87.0
    assert info.total_battery_charge_current == 21.5
    assert info.charge_source == "Solar"
    assert info.load_source == "Battery"
    assert info.work_mode == "Battery Mode"
    assert info.has_load_1 is True
    assert info.scc_charge_on_1 is True
    assert info.overload is False
    assert info.data_id == 123456.0
    assert info.time == WorkTime(year=124, month=4, date=1, hours=12, time=1714564800000)


def test_missing_and_null_fields_keep_defaults():
    info = parse_work_info(b'{"gridFrequency": null, "batteryVoltage": 52.1}')

    assert info.grid_frequency_1 == 0.0
    assert info.battery_voltage == 52.1
    assert info.charge_source == ""
    assert info.line_loss_2 is False
    assert info.time == WorkTime()


def test_empty_object_is_all_defaults():
    assert parse_work_info(b"{}") == WorkInfo()


def test_every_mapped_attribute_exists():
    for attr in WORK_INFO_KEYS.values():
        assert hasattr(WorkInfo(), attr)


@pytest.mark.parametrize("body", [
    b"",
    b"<html>Session expired</html>",
    b"[1, 2, 3]",
    b'"text"',
    b'{"gridFrequency": NaN}',
    b'{"gridFrequency": Infinity}',
    b'{"batteryVoltage": -Infinity}',
])
def test_non_object_bodies_are_rejected(body):
    with pytest.raises(PDCDecodeError):
        parse_work_info(body)


@pytest.mark.parametrize("payload", [
    {"gridFrequency": "50.0"},
    {"gridFrequency": True},
    {"hasLoad": 1},
    {"chargeSource": 3},
    {"time": "yesterday"},
    {"time": {"year": "2024"}},
    {"gridFrequency": 10 ** 400},
])
def test_wrong_value_types_are_rejected(payload):
    with pytest.raises(PDCDecodeError):
        parse_work_info(json.dumps(payload))


def test_float_overflowing_to_infinity_is_rejected():
    with pytest.raises(PDCDecodeError):
        parse_work_info(b'{"batteryVoltage": 1e400}')
