from log_advisor.analysis.bridge import AnalysisBridge, AnalysisChannel
from log_advisor.analysis.trigger import AnalysisTrigger, LineBuffer

__all__ = [
    "AnalysisBridge",
    "AnalysisChannel",
    "AnalysisTrigger",
    "LineBuffer",
]
