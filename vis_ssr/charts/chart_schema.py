from __future__ import annotations
from typing import List, TypedDict, Literal, Dict, Any, Optional
from pydantic import BaseModel

Theme = Literal["default", "academy", "dark"]

class Style(TypedDict, total=False):
    backgroundColor: str
    palette: List[str]
    lineWidth: float

class TimePoint(TypedDict, total=False):
    time: str
    value: float
    group: str

class CategoryPoint(TypedDict, total=False):
    category: str
    value: float
    group: str

class XYPoint(TypedDict, total=False):
    x: float
    y: float
    group: str

class RadarPoint(TypedDict, total=False):
    name: str
    value: float
    group: str

DataPoint = TimePoint | CategoryPoint | XYPoint | RadarPoint | float

class DualAxesSeries(TypedDict, total=False):
    type: Literal["column", "line"]
    data: List[float]
    axisYTitle: str

class ChartOptions(TypedDict, total=False):
    # only "type" is required; everything else depends on it
    type: str
    data: List[DataPoint]
    title: str
    axisXTitle: str
    axisYTitle: str
    width: int   # px
    height: int  # px
    theme: Theme
    style: Style
    group: bool
    stack: bool
    innerRadius: float
    binNumber: int
    categories: List[str]
    series: List[DualAxesSeries]


class RenderResult(BaseModel):
    """Response envelope: resultObj on success, errorMessage on failure, never both."""
    success: bool
    resultObj: Optional[str] = None
    errorMessage: Optional[str] = None

    @classmethod
    def ok(cls, url: str) -> "RenderResult":
        return cls(success=True, resultObj=url)

    @classmethod
    def fail(cls, message: str) -> "RenderResult":
        return cls(success=False, errorMessage=message)

    def body(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True)
