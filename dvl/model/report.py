from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Mapping, Tuple


class ReportDecodeError(ValueError):
    """A report document is missing fields or carries values of the wrong type."""


def _num(doc: Mapping[str, Any], key: str) -> float:
    try:
        value = doc[key]
    except KeyError:
        raise ReportDecodeError(f"missing field '{key}'") from None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ReportDecodeError(f"field '{key}' must be a number, got {type(value).__name__}")
    return float(value)


def _int(doc: Mapping[str, Any], key: str) -> int:
    try:
        value = doc[key]
    except KeyError:
        raise ReportDecodeError(f"missing field '{key}'") from None
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if not isinstance(value, int):
        raise ReportDecodeError(f"field '{key}' must be an integer, got {type(value).__name__}")
    return value


def _bool(doc: Mapping[str, Any], key: str) -> bool:
    try:
        value = doc[key]
    except KeyError:
        raise ReportDecodeError(f"missing field '{key}'") from None
    if isinstance(value, bool):
        return value
    # accept 0/1 int
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    raise ReportDecodeError(f"field '{key}' must be a bool, got {type(value).__name__}")


@dataclass(frozen=True)
class TransducerReport:
    """Per-beam detail of a velocity report."""

    id: int            # transducer id (0-3)
    velocity: float    # velocity along the beam (m/s)
    distance: float    # distance to the reflecting surface (m)
    rssi: float        # signal strength (dBm)
    nsd: float         # noise level (dBm)
    beam_valid: bool

    @classmethod
    def from_dict(cls, doc: Mapping[str, Any]) -> "TransducerReport":
        return cls(
            id=_int(doc, "id"),
            velocity=_num(doc, "velocity"),
            distance=_num(doc, "distance"),
            rssi=_num(doc, "rssi"),
            nsd=_num(doc, "nsd"),
            beam_valid=_bool(doc, "beam_valid"),
        )


@dataclass(frozen=True)
class VelocityReport:
    """
    Velocity-and-transducer report.

    Sent once per velocity calculation (2-15 Hz depending on altitude).
    Axes are the DVL body frame, or the vehicle frame when a mounting
    rotation offset is configured.

    Attributes:
        time: milliseconds since the previous velocity report.
        vx, vy, vz: velocity (m/s).
        fom: figure of merit, derived from the covariance (m/s).
        covariance: 3x3 velocity covariance ((m/s)^2), row-major.
        altitude: distance to the reflecting surface along Z (m).
        transducers: the four beam reports.
        velocity_valid: True when the DVL has bottom lock.
        status: 8 bit status mask; bit 0 = high temperature.
        time_of_validity: center-of-ping time (unix, microseconds).
        time_of_transmission: time the report was sent (unix, microseconds).
    """

    time: float
    vx: float
    vy: float
    vz: float
    fom: float
    covariance: Tuple[Tuple[float, float, float], ...]
    altitude: float
    transducers: Tuple[TransducerReport, ...]
    velocity_valid: bool
    status: int
    time_of_validity: int
    time_of_transmission: int
    format: str = ""

    @property
    def high_temperature(self) -> bool:
        return bool(self.status & 0x01)

    @classmethod
    def from_dict(cls, doc: Mapping[str, Any]) -> "VelocityReport":
        cov = doc.get("covariance")
        if not isinstance(cov, list) or len(cov) != 3:
            raise ReportDecodeError("field 'covariance' must be a 3x3 matrix")
        rows = []
        for row in cov:
            if not isinstance(row, list) or len(row) != 3:
                raise ReportDecodeError("field 'covariance' must be a 3x3 matrix")
            rows.append(tuple(_num({"v": v}, "v") for v in row))

        beams = doc.get("transducers")
        if not isinstance(beams, list):
            raise ReportDecodeError("field 'transducers' must be a list")
        transducers = []
        for beam in beams:
            if not isinstance(beam, Mapping):
                raise ReportDecodeError(f"invalid transducer entry: {beam!r}")
            transducers.append(TransducerReport.from_dict(beam))

        return cls(
            time=_num(doc, "time"),
            vx=_num(doc, "vx"),
            vy=_num(doc, "vy"),
            vz=_num(doc, "vz"),
            fom=_num(doc, "fom"),
            covariance=tuple(rows),
            altitude=_num(doc, "altitude"),
            transducers=tuple(transducers),
            velocity_valid=_bool(doc, "velocity_valid"),
            status=_int(doc, "status"),
            time_of_validity=_int(doc, "time_of_validity"),
            time_of_transmission=_int(doc, "time_of_transmission"),
            format=str(doc.get("format", "")),
        )

    def as_dict(self) -> dict:
        d = asdict(self)
        d["covariance"] = [list(row) for row in self.covariance]
        d["transducers"] = [asdict(t) for t in self.transducers]
        return d


@dataclass(frozen=True)
class DeadReckoningReport:
    """
    Position/orientation estimate from dead reckoning (about 5 Hz), relative to
    the frame at the start of the current dead reckoning run.
    """

    ts: float      # unix timestamp (s)
    x: float       # (m)
    y: float
    z: float
    std: float     # position figure of merit (m)
    roll: float    # (deg)
    pitch: float
    yaw: float
    status: int    # 0 = ok, 1 = issues
    format: str = ""

    @classmethod
    def from_dict(cls, doc: Mapping[str, Any]) -> "DeadReckoningReport":
        return cls(
            ts=_num(doc, "ts"),
            x=_num(doc, "x"),
            y=_num(doc, "y"),
            z=_num(doc, "z"),
            std=_num(doc, "std"),
            roll=_num(doc, "roll"),
            pitch=_num(doc, "pitch"),
            yaw=_num(doc, "yaw"),
            status=_int(doc, "status"),
            format=str(doc.get("format", "")),
        )

    def as_dict(self) -> dict:
        return asdict(self)
