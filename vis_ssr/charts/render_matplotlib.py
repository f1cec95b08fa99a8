import io, math
import matplotlib
matplotlib.use('Agg')
from matplotlib.figure import Figure
from matplotlib.backends.backend_agg import FigureCanvasAgg
import numpy as np
import pandas as pd
from typing import Dict, Any, List, Callable
from .chart_schema import ChartOptions

DEFAULT_WIDTH = 600
DEFAULT_HEIGHT = 400
DPI = 100
MAX_TICK_LABELS = 12

BASE_PALETTE = ["#1783FF", "#00C9C9", "#F0884D", "#D580FF", "#7863FF",
                "#60C42D", "#BD8F24", "#FF80CA", "#2491B3", "#17C76F"]

THEMES: Dict[str, Dict[str, Any]] = {
    "default": {"background": "#FFFFFF", "text": "#1D2129", "grid": "#E5E6EB", "palette": BASE_PALETTE},
    "academy": {"background": "#FFFFFF", "text": "#000000", "grid": "#D9D9D9",
                "palette": ["#4E79A7", "#F28E2C", "#E15759", "#76B7B2", "#59A14F",
                            "#EDC949", "#AF7AA1", "#FF9DA7", "#9C755F", "#BAB0AB"]},
    "dark": {"background": "#141414", "text": "#E6E6E6", "grid": "#424242", "palette": BASE_PALETTE},
}


#helpers to turn the loose option dicts into something matplotlib can draw
def _theme(options: ChartOptions) -> Dict[str, Any]:
    theme = dict(THEMES.get(str(options.get("theme") or "default"), THEMES["default"]))
    style = options.get("style")
    if isinstance(style, dict):
        if style.get("backgroundColor"):
            theme["background"] = style["backgroundColor"]
        palette = style.get("palette")
        if isinstance(palette, list) and palette:
            theme["palette"] = [str(c) for c in palette]
        if style.get("lineWidth"):
            theme["line_width"] = float(style["lineWidth"])
    theme.setdefault("line_width", 2.0)
    return theme

def _color(theme: Dict[str, Any], i: int) -> str:
    palette = theme["palette"]
    return palette[i % len(palette)]

def _frame(data: Any, required: List[str], chart: str, numeric=("value",)) -> pd.DataFrame:
    if not isinstance(data, list) or not data:
        raise ValueError(f"'{chart}' chart needs a non-empty data list")
    if not all(isinstance(d, dict) for d in data):
        raise ValueError(f"'{chart}' chart data items must be objects")
    df = pd.DataFrame(data)
    missing = [c for c in required if c not in df.columns]
    if missing:
        raise ValueError(f"'{chart}' chart data is missing field(s): {', '.join(missing)}")
    for c in numeric:
        df[c] = pd.to_numeric(df[c])
    return df

def _numbers(values: Any, what: str) -> np.ndarray:
    if not isinstance(values, list) or not values:
        raise ValueError(f"{what} needs a non-empty list of numbers")
    return pd.to_numeric(pd.Series(values)).to_numpy(dtype=float)

def _has_groups(df: pd.DataFrame) -> bool:
    return "group" in df.columns and bool(df["group"].notna().any())

def _wide(df: pd.DataFrame, index: str) -> pd.DataFrame:
    """One row per index key (first-seen order), one column per group."""
    df = df.copy()
    df[index] = df[index].astype(str)
    keys = pd.unique(df[index])
    if _has_groups(df):
        df["group"] = df["group"].fillna("").astype(str)
        groups = pd.unique(df["group"])
        wide = df.groupby([index, "group"], sort=False)["value"].sum(min_count=1).unstack("group")
        return wide.reindex(index=keys, columns=groups)
    return df.groupby(index, sort=False)["value"].sum(min_count=1).reindex(keys).to_frame("value")

def _cartesian(fig: Figure, theme: Dict[str, Any]):
    ax = fig.add_subplot()
    ax.set_facecolor(theme["background"])
    for side in ("top", "right"):
        ax.spines[side].set_visible(False)
    for side in ("left", "bottom"):
        ax.spines[side].set_color(theme["grid"])
    ax.tick_params(colors=theme["text"])
    ax.grid(True, color=theme["grid"], linewidth=0.6)
    ax.set_axisbelow(True)
    return ax

def _axis_titles(ax, options: ChartOptions, theme: Dict[str, Any], swap: bool = False):
    x_title, y_title = options.get("axisXTitle"), options.get("axisYTitle")
    if swap:
        x_title, y_title = y_title, x_title
    if x_title:
        ax.set_xlabel(str(x_title), color=theme["text"])
    if y_title:
        ax.set_ylabel(str(y_title), color=theme["text"])

def _category_ticks(ax, labels: List[str], axis: str = "x"):
    x = np.arange(len(labels))
    step = max(1, math.ceil(len(labels) / MAX_TICK_LABELS))
    if axis == "y":
        ax.set_yticks(x[::step], labels[::step])
        return
    ax.set_xticks(x[::step], labels[::step])
    if len(labels) > 8:
        ax.figure.autofmt_xdate(rotation=30)

def _legend(ax, theme: Dict[str, Any], handles=None, labels=None):
    if handles is None:
        handles, labels = ax.get_legend_handles_labels()
    if len(handles) > 1:
        ax.legend(handles, labels, frameon=False, labelcolor=theme["text"])


#one drawer per chart type, each returns the axes that carries the title
def _line(fig: Figure, options: ChartOptions, theme: Dict[str, Any]):
    wide = _wide(_frame(options.get("data"), ["time", "value"], "line"), "time")
    ax = _cartesian(fig, theme)
    x = np.arange(len(wide.index))
    for i, col in enumerate(wide.columns):
        ax.plot(x, wide[col].to_numpy(dtype=float), color=_color(theme, i),
                linewidth=theme["line_width"], marker="o" if len(x) <= 30 else None,
                markersize=4, label=str(col))
    _category_ticks(ax, [str(k) for k in wide.index])
    _axis_titles(ax, options, theme)
    _legend(ax, theme)
    return ax

def _area(fig: Figure, options: ChartOptions, theme: Dict[str, Any]):
    wide = _wide(_frame(options.get("data"), ["time", "value"], "area"), "time")
    ax = _cartesian(fig, theme)
    x = np.arange(len(wide.index))
    colors = [_color(theme, i) for i in range(len(wide.columns))]
    if options.get("stack") and len(wide.columns) > 1:
        filled = wide.fillna(0.0)
        ax.stackplot(x, *[filled[c].to_numpy(dtype=float) for c in wide.columns],
                     colors=colors, labels=[str(c) for c in wide.columns], alpha=0.8)
    else:
        for i, col in enumerate(wide.columns):
            v = wide[col].to_numpy(dtype=float)
            ax.plot(x, v, color=colors[i], linewidth=theme["line_width"], label=str(col))
            ax.fill_between(x, v, color=colors[i], alpha=0.25)
    _category_ticks(ax, [str(k) for k in wide.index])
    _axis_titles(ax, options, theme)
    _legend(ax, theme)
    return ax

def _bars(fig: Figure, options: ChartOptions, theme: Dict[str, Any], horizontal: bool):
    chart = "bar" if horizontal else "column"
    wide = _wide(_frame(options.get("data"), ["category", "value"], chart), "category").fillna(0.0)
    ax = _cartesian(fig, theme)
    x = np.arange(len(wide.index))
    cols = list(wide.columns)
    stack = bool(options.get("stack")) and len(cols) > 1
    width = 0.8 if stack else 0.8 / len(cols)
    base = np.zeros(len(x))
    for i, col in enumerate(cols):
        v = wide[col].to_numpy(dtype=float)
        pos = x if stack else x - 0.4 + width * (i + 0.5)
        if horizontal:
            ax.barh(pos, v, height=width, left=base if stack else None, color=_color(theme, i), label=str(col))
        else:
            ax.bar(pos, v, width=width, bottom=base if stack else None, color=_color(theme, i), label=str(col))
        if stack:
            base = base + v
    labels = [str(k) for k in wide.index]
    if horizontal:
        _category_ticks(ax, labels, axis="y")
        ax.invert_yaxis()
    else:
        _category_ticks(ax, labels)
    _axis_titles(ax, options, theme, swap=horizontal)
    _legend(ax, theme)
    return ax

def _column(fig: Figure, options: ChartOptions, theme: Dict[str, Any]):
    return _bars(fig, options, theme, horizontal=False)

def _bar(fig: Figure, options: ChartOptions, theme: Dict[str, Any]):
    return _bars(fig, options, theme, horizontal=True)

def _pie(fig: Figure, options: ChartOptions, theme: Dict[str, Any]):
    df = _frame(options.get("data"), ["category", "value"], "pie")
    ax = fig.add_subplot()
    ax.set_facecolor(theme["background"])
    inner = float(options.get("innerRadius") or 0.0)
    if not 0.0 <= inner < 1.0:
        raise ValueError("'pie' chart innerRadius must be between 0 and 1")
    wedgeprops = {"width": 1.0 - inner, "edgecolor": theme["background"]} if inner else {"edgecolor": theme["background"]}
    ax.pie(df["value"].to_numpy(dtype=float), labels=[str(c) for c in df["category"]],
           colors=[_color(theme, i) for i in range(len(df))], autopct="%1.1f%%",
           startangle=90, counterclock=False, wedgeprops=wedgeprops,
           textprops={"color": theme["text"]})
    ax.set_aspect("equal")
    return ax

def _scatter(fig: Figure, options: ChartOptions, theme: Dict[str, Any]):
    df = _frame(options.get("data"), ["x", "y"], "scatter", numeric=("x", "y"))
    ax = _cartesian(fig, theme)
    if _has_groups(df):
        for i, (g, part) in enumerate(df.groupby(df["group"].fillna("").astype(str), sort=False)):
            ax.scatter(part["x"], part["y"], color=_color(theme, i), alpha=0.8, label=g)
    else:
        ax.scatter(df["x"], df["y"], color=_color(theme, 0), alpha=0.8)
    _axis_titles(ax, options, theme)
    _legend(ax, theme)
    return ax

def _histogram(fig: Figure, options: ChartOptions, theme: Dict[str, Any]):
    values = _numbers(options.get("data"), "'histogram' chart")
    bins = options.get("binNumber")
    ax = _cartesian(fig, theme)
    ax.hist(values, bins=int(bins) if bins else "auto", color=_color(theme, 0), edgecolor=theme["background"])
    _axis_titles(ax, options, theme)
    return ax

def _radar(fig: Figure, options: ChartOptions, theme: Dict[str, Any]):
    wide = _wide(_frame(options.get("data"), ["name", "value"], "radar"), "name").fillna(0.0)
    n = len(wide.index)
    if n < 3:
        raise ValueError("'radar' chart needs at least 3 dimensions")
    angles = np.linspace(0, 2 * np.pi, n, endpoint=False)
    closed = np.concatenate([angles, angles[:1]])
    ax = fig.add_subplot(projection="polar")
    ax.set_facecolor(theme["background"])
    for i, col in enumerate(wide.columns):
        v = wide[col].to_numpy(dtype=float)
        v = np.concatenate([v, v[:1]])
        ax.plot(closed, v, color=_color(theme, i), linewidth=theme["line_width"], label=str(col))
        ax.fill(closed, v, color=_color(theme, i), alpha=0.15)
    ax.set_xticks(angles, [str(k) for k in wide.index])
    ax.tick_params(colors=theme["text"])
    ax.grid(True, color=theme["grid"])
    ax.spines["polar"].set_color(theme["grid"])
    _legend(ax, theme)
    return ax

def _funnel(fig: Figure, options: ChartOptions, theme: Dict[str, Any]):
    df = _frame(options.get("data"), ["category", "value"], "funnel")
    values = df["value"].fillna(0.0).to_numpy(dtype=float)
    top = float(values.max())
    y = np.arange(len(values))
    ax = fig.add_subplot()
    ax.set_facecolor(theme["background"])
    ax.barh(y, values, left=(top - values) / 2, height=0.8,
            color=[_color(theme, i) for i in range(len(values))])
    for yi, v, cat in zip(y, values, df["category"]):
        ax.text(top / 2, yi, f"{cat}: {v:g}", ha="center", va="center", color="white")
    ax.invert_yaxis()
    ax.set_axis_off()
    return ax

def _distribution(fig: Figure, options: ChartOptions, theme: Dict[str, Any], chart: str):
    df = _frame(options.get("data"), ["category", "value"], chart)
    df["category"] = df["category"].astype(str)
    parts = [(cat, g["value"].dropna().to_numpy(dtype=float)) for cat, g in df.groupby("category", sort=False)]
    if any(len(vals) == 0 for _, vals in parts):
        raise ValueError(f"'{chart}' chart has a category without values")
    ax = _cartesian(fig, theme)
    positions = np.arange(1, len(parts) + 1)
    if chart == "boxplot":
        boxes = ax.boxplot([vals for _, vals in parts], positions=positions, patch_artist=True)
        for i, patch in enumerate(boxes["boxes"]):
            patch.set_facecolor(_color(theme, i))
            patch.set_alpha(0.7)
    else:
        body = ax.violinplot([vals for _, vals in parts], positions=positions, showmedians=True)
        for i, patch in enumerate(body["bodies"]):
            patch.set_facecolor(_color(theme, i))
    ax.set_xticks(positions, [cat for cat, _ in parts])
    _axis_titles(ax, options, theme)
    return ax

def _boxplot(fig: Figure, options: ChartOptions, theme: Dict[str, Any]):
    return _distribution(fig, options, theme, "boxplot")

def _violin(fig: Figure, options: ChartOptions, theme: Dict[str, Any]):
    return _distribution(fig, options, theme, "violin")

def _dual_axes(fig: Figure, options: ChartOptions, theme: Dict[str, Any]):
    categories = options.get("categories")
    series = options.get("series")
    if not isinstance(categories, list) or not categories:
        raise ValueError("'dual-axes' chart needs a non-empty categories list")
    if not isinstance(series, list) or not series or not all(isinstance(s, dict) for s in series):
        raise ValueError("'dual-axes' chart needs a non-empty series list")
    columns = [s for s in series if s.get("type", "column") == "column"]
    lines = [s for s in series if s.get("type") == "line"]
    if len(columns) + len(lines) != len(series):
        raise ValueError("'dual-axes' series type must be 'column' or 'line'")
    for s in series:
        if not isinstance(s.get("data"), list) or len(s["data"]) != len(categories):
            raise ValueError("'dual-axes' series data must match the categories length")

    ax = _cartesian(fig, theme)
    x = np.arange(len(categories))
    width = 0.8 / max(len(columns), 1)
    for i, s in enumerate(columns):
        ax.bar(x - 0.4 + width * (i + 0.5), _numbers(s["data"], "'dual-axes' series"),
               width=width, color=_color(theme, i), label=str(s.get("axisYTitle") or f"column {i + 1}"))
    line_ax = ax.twinx() if columns and lines else ax
    for j, s in enumerate(lines):
        line_ax.plot(x, _numbers(s["data"], "'dual-axes' series"), color=_color(theme, len(columns) + j),
                     linewidth=theme["line_width"], marker="o", label=str(s.get("axisYTitle") or f"line {j + 1}"))
    _category_ticks(ax, [str(c) for c in categories])
    if options.get("axisXTitle"):
        ax.set_xlabel(str(options["axisXTitle"]), color=theme["text"])
    left = columns[0] if columns else lines[0]
    if left.get("axisYTitle"):
        ax.set_ylabel(str(left["axisYTitle"]), color=theme["text"])
    if line_ax is not ax:
        line_ax.tick_params(colors=theme["text"])
        line_ax.spines["top"].set_visible(False)
        line_ax.spines["right"].set_color(theme["grid"])
        if lines[0].get("axisYTitle"):
            line_ax.set_ylabel(str(lines[0]["axisYTitle"]), color=theme["text"])
    h1, l1 = ax.get_legend_handles_labels()
    h2, l2 = line_ax.get_legend_handles_labels() if line_ax is not ax else ([], [])
    _legend(ax, theme, h1 + h2, l1 + l2)
    return ax


RENDERERS: Dict[str, Callable] = {
    "line": _line,
    "area": _area,
    "column": _column,
    "bar": _bar,
    "pie": _pie,
    "scatter": _scatter,
    "histogram": _histogram,
    "radar": _radar,
    "funnel": _funnel,
    "boxplot": _boxplot,
    "violin": _violin,
    "dual-axes": _dual_axes,
}

def chart_types() -> List[str]:
    return list(RENDERERS.keys())

def render_figure(options: ChartOptions) -> Figure:
    if not isinstance(options, dict):
        raise ValueError("Chart options must be a JSON object")
    kind = options.get("type")
    if not isinstance(kind, str) or not kind:
        raise ValueError("Chart options are missing 'type'")
    draw = RENDERERS.get(kind)
    if draw is None:
        raise ValueError(f"Unsupported chart type '{kind}', expected one of: {', '.join(chart_types())}")

    theme = _theme(options)
    width = int(options.get("width") or DEFAULT_WIDTH)
    height = int(options.get("height") or DEFAULT_HEIGHT)
    if width <= 0 or height <= 0:
        raise ValueError("Chart width and height must be positive")
    # Figure instead of pyplot: handlers run on a thread pool and pyplot keeps global state
    fig = Figure(figsize=(width / DPI, height / DPI), dpi=DPI, facecolor=theme["background"])
    FigureCanvasAgg(fig)
    ax = draw(fig, options, theme)
    if options.get("title"):
        ax.set_title(str(options["title"]), color=theme["text"])
    fig.tight_layout()
    return fig

def render_png(options: ChartOptions) -> bytes:
    fig = render_figure(options)
    buf = io.BytesIO()
    fig.savefig(buf, format="png", facecolor=fig.get_facecolor())
    return buf.getvalue()
