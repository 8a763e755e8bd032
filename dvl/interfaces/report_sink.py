from typing import Protocol

from dvl.model.report import DeadReckoningReport, VelocityReport


class ReportSink(Protocol):
    def on_velocity(self, report: VelocityReport) -> None: ...
    def on_dead_reckoning(self, report: DeadReckoningReport) -> None: ...
    def close(self) -> None: ...
