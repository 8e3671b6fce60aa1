"""
Analysis and plotting configuration.

Everything that used to be a literal in the case-study script (filter
values, comparison direction, interval multiplier, colors) lives here.
"""

import json
from dataclasses import dataclass, field, fields, asdict
from pathlib import Path
from typing import Optional, Tuple, Dict, Union


@dataclass
class ColumnMap:
    """Names of the input columns."""
    subject: str = 'ID'
    compartment: str = 'CMT'
    dose: str = 'DOSE'
    study: str = 'STUDY'
    part: str = 'PART'
    nominal_time: str = 'NOMTIME'   # hours
    profile_day: str = 'PROFDAY'    # 0 = baseline
    value: str = 'DV'
    subgroup: str = 'BIOMARKER'     # 0/1
    treatment: str = 'TRT'

    def required(self) -> list:
        """Columns every input must carry (filter columns are optional)."""
        return [self.subject, self.nominal_time, self.profile_day,
                self.value, self.subgroup, self.treatment]


@dataclass
class FilterSpec:
    """
    Row filters applied before any derivation.

    ``None`` disables a filter. ``doses`` is a collection of allowed levels.
    """
    compartment: Optional[Union[int, str]] = None
    doses: Optional[Tuple] = None
    study: Optional[Union[int, str]] = None
    part: Optional[Union[int, str]] = None

    def active(self) -> Dict[str, object]:
        return {f.name: getattr(self, f.name) for f in fields(self)
                if getattr(self, f.name) is not None}


_PCT_DENOMINATORS = ('current', 'baseline')
_RANDOM_EFFECTS = ('slope', 'intercept', 'none')


@dataclass
class AnalysisConfig:
    """
    Options for ``run_analysis``.

    Parameters
    ----------
    columns : ColumnMap
        Input column names
    filters : FilterSpec
        Compartment/dose/study/part filters
    baseline_day : int
        Profile day identifying the baseline record
    hours_per_week : float
        Converts nominal time (hours) to weeks for visit labels and the
        random slope
    control : str
        Treatment label of the reference (placebo) arm
    reverse : bool
        If True, contrasts are control minus active
    ci_multiplier : float
        Interval half-width in standard errors (1.96 ~ 95%)
    benefit_positive : bool
        Store the negated difference so that positive means more weight loss
        on active treatment
    subgroup_labels : dict
        Labels for subgroup codes 0 and 1
    pct_denominator : {'current', 'baseline'}
        Denominator of percent change. 'current' reproduces the published
        figures.
    require_baseline : bool
        Raise instead of dropping subjects without a baseline
    random_effects : {'slope', 'intercept', 'none'}
    reml : bool
    backend : str
        'auto', 'mixedlm' or 'ols'
    maxiter : int
    delimiter : str
    """
    columns: ColumnMap = field(default_factory=ColumnMap)
    filters: FilterSpec = field(default_factory=FilterSpec)
    baseline_day: int = 0
    hours_per_week: float = 168.0
    control: str = 'Placebo'
    reverse: bool = False
    ci_multiplier: float = 1.96
    benefit_positive: bool = True
    subgroup_labels: Dict[int, str] = field(default_factory=lambda: {
        0: 'Biomarker negative',
        1: 'Biomarker positive',
    })
    pct_denominator: str = 'current'
    require_baseline: bool = False
    random_effects: str = 'slope'
    reml: bool = True
    backend: str = 'auto'
    maxiter: int = 200
    delimiter: str = ','

    def __post_init__(self):
        if isinstance(self.columns, dict):
            self.columns = ColumnMap(**self.columns)
        if isinstance(self.filters, dict):
            self.filters = FilterSpec(**self.filters)
        if self.filters.doses is not None:
            self.filters.doses = tuple(self.filters.doses)
        # JSON object keys are strings
        self.subgroup_labels = {int(k): str(v)
                                for k, v in self.subgroup_labels.items()}

        if self.pct_denominator not in _PCT_DENOMINATORS:
            raise ValueError(
                f"pct_denominator must be one of {_PCT_DENOMINATORS}, "
                f"got '{self.pct_denominator}'"
            )
        if self.random_effects not in _RANDOM_EFFECTS:
            raise ValueError(
                f"random_effects must be one of {_RANDOM_EFFECTS}, "
                f"got '{self.random_effects}'"
            )
        if not self.ci_multiplier > 0:
            raise ValueError("ci_multiplier must be positive")
        if not self.hours_per_week > 0:
            raise ValueError("hours_per_week must be positive")
        if sorted(self.subgroup_labels) != [0, 1]:
            raise ValueError("subgroup_labels must map exactly the codes 0 and 1")
        if len(set(self.subgroup_labels.values())) != 2:
            raise ValueError("subgroup_labels must be distinct")
        if self.maxiter < 1:
            raise ValueError("maxiter must be at least 1")

    @classmethod
    def from_dict(cls, options: dict) -> 'AnalysisConfig':
        known = {f.name for f in fields(cls)}
        unknown = set(options) - known
        if unknown:
            raise ValueError(f"Unknown configuration option(s): {sorted(unknown)}")
        return cls(**options)

    @classmethod
    def from_json(cls, path: Union[str, Path]) -> 'AnalysisConfig':
        with open(path, 'r') as f:
            return cls.from_dict(json.load(f))

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class PlotTheme:
    """Shared visual style, passed to every plotting function."""
    treatment_colors: Dict[str, str] = field(default_factory=lambda: {
        'Placebo': '#7f7f7f',
    })
    default_treatment_color: str = '#1f4e79'
    subgroup_colors: Dict[str, str] = field(default_factory=lambda: {
        'Biomarker negative': '#e69f00',
        'Biomarker positive': '#0072b2',
    })
    default_subgroup_color: str = '#333333'
    visit_breaks: Optional[Tuple[float, ...]] = None   # weeks; None = data
    figsize: Tuple[float, float] = (10.0, 5.6)
    dpi: int = 100
    title_size: float = 16.0
    label_size: float = 12.0
    tick_size: float = 10.0
    pct_change_label: str = 'Change from baseline (%)'
    contrast_label: str = 'Weight loss vs placebo (kg)\n(positive = benefit)'
    week_label: str = 'Week'
    not_estimable_text: str = 'n.e.'
    spaghetti_alpha: float = 0.35

    def treatment_color(self, label: str) -> str:
        return self.treatment_colors.get(label, self.default_treatment_color)

    def subgroup_color(self, label: str) -> str:
        return self.subgroup_colors.get(label, self.default_subgroup_color)
