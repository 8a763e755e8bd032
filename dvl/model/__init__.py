from .report import DeadReckoningReport, ReportDecodeError, TransducerReport, VelocityReport

__all__ = ["VelocityReport",
           "TransducerReport",
           "DeadReckoningReport",
           "ReportDecodeError"]
