"""
Figures for the case study, from raw trajectories to the executive slide.

Each function returns a matplotlib ``Figure`` built without pyplot, so no
global figure registry or rcParams are touched. All styling comes from the
``PlotTheme`` passed in.
"""

import numpy as np
import pandas as pd
from pathlib import Path
from typing import Optional, Union, Dict

from matplotlib.figure import Figure
from matplotlib.lines import Line2D

from .config import PlotTheme
from .contrasts import ContrastTable


def _style_axis(ax, theme: PlotTheme):
    ax.tick_params(labelsize=theme.tick_size)
    for side in ('top', 'right'):
        ax.spines[side].set_visible(False)
    ax.grid(axis='y', color='#dddddd', linewidth=0.6)
    ax.set_axisbelow(True)


def _week_ticks(ax, weeks, theme: PlotTheme):
    breaks = theme.visit_breaks if theme.visit_breaks is not None else sorted(set(weeks))
    ax.set_xticks(list(breaks))
    ax.set_xlabel(theme.week_label, fontsize=theme.label_size)


def _levels(series: pd.Series) -> list:
    if isinstance(series.dtype, pd.CategoricalDtype):
        present = set(series.dropna())
        return [c for c in series.cat.categories if c in present]
    return sorted(series.dropna().unique(), key=str)


def _finite(derived: pd.DataFrame) -> pd.DataFrame:
    if 'pct_change_nonfinite' in derived.columns:
        return derived[~derived['pct_change_nonfinite']]
    return derived


def plot_individual_profiles(
    derived: pd.DataFrame,
    theme: Optional[PlotTheme] = None,
    measure: str = 'pct_change',
    title: str = 'Individual weight profiles'
) -> Figure:
    """
    One line per subject, one panel per treatment arm, colored by subgroup.

    The starting point: every data point visible, hard to read.
    """
    theme = theme or PlotTheme()
    data = _finite(derived)
    arms = _levels(data['treatment'])
    subgroups = _levels(data['subgroup'])

    fig = Figure(figsize=theme.figsize, dpi=theme.dpi)
    axes = fig.subplots(1, len(arms), sharey=True, squeeze=False)[0]

    for ax, arm in zip(axes, arms):
        subset = data[data['treatment'] == arm]
        for (_, subgroup), traj in subset.groupby(['subject', 'subgroup'], observed=True):
            traj = traj.sort_values('week')
            ax.plot(np.r_[0.0, traj['week'].to_numpy()],
                    np.r_[0.0, traj[measure].to_numpy()],
                    color=theme.subgroup_color(subgroup),
                    alpha=theme.spaghetti_alpha, linewidth=0.8)
        ax.axhline(0.0, color='#555555', linewidth=0.8)
        ax.set_title(str(arm), fontsize=theme.label_size)
        _week_ticks(ax, np.r_[0.0, data['week'].to_numpy()], theme)
        _style_axis(ax, theme)

    axes[0].set_ylabel(theme.pct_change_label if measure == 'pct_change' else measure,
                       fontsize=theme.label_size)
    handles = [Line2D([], [], color=theme.subgroup_color(s), label=str(s)) for s in subgroups]
    axes[-1].legend(handles=handles, frameon=False, fontsize=theme.tick_size)
    fig.suptitle(title, fontsize=theme.title_size)
    return fig


def plot_mean_profiles(
    derived: pd.DataFrame,
    theme: Optional[PlotTheme] = None,
    measure: str = 'pct_change',
    title: str = 'Mean weight change by biomarker status'
) -> Figure:
    """Mean +/- SE by visit, one line per arm, one panel per subgroup."""
    theme = theme or PlotTheme()
    data = _finite(derived)
    arms = _levels(data['treatment'])
    subgroups = _levels(data['subgroup'])

    stats = (data.groupby(['subgroup', 'treatment', 'week'], observed=True)[measure]
             .agg(['mean', 'sem', 'count']).reset_index())

    fig = Figure(figsize=theme.figsize, dpi=theme.dpi)
    axes = fig.subplots(1, len(subgroups), sharey=True, squeeze=False)[0]

    for ax, subgroup in zip(axes, subgroups):
        for arm in arms:
            s = stats[(stats['subgroup'] == subgroup) & (stats['treatment'] == arm)]
            s = s.sort_values('week')
            ax.errorbar(np.r_[0.0, s['week'].to_numpy()],
                        np.r_[0.0, s['mean'].to_numpy()],
                        yerr=np.r_[0.0, s['sem'].fillna(0.0).to_numpy()],
                        color=theme.treatment_color(arm), marker='o',
                        markersize=4, capsize=3, linewidth=1.6, label=str(arm))
        ax.axhline(0.0, color='#555555', linewidth=0.8)
        ax.set_title(str(subgroup), fontsize=theme.label_size)
        _week_ticks(ax, np.r_[0.0, data['week'].to_numpy()], theme)
        _style_axis(ax, theme)

    axes[0].set_ylabel(theme.pct_change_label if measure == 'pct_change' else measure,
                       fontsize=theme.label_size)
    axes[-1].legend(frameon=False, fontsize=theme.tick_size)
    fig.suptitle(title, fontsize=theme.title_size)
    return fig


def _pick_comparison(table: ContrastTable, comparison: Optional[str]) -> pd.DataFrame:
    if comparison is None:
        if len(table.comparisons) > 1:
            raise ValueError(f"Pick one of {table.comparisons}")
        if not table.comparisons:
            raise KeyError("Contrast table is empty")
        comparison = table.comparisons[0]
    return table.frame[table.frame['comparison'] == comparison]


def plot_contrasts(
    table: ContrastTable,
    theme: Optional[PlotTheme] = None,
    comparison: Optional[str] = None,
    title: str = 'Treatment effect by visit and biomarker status'
) -> Figure:
    """
    Model-based contrasts with intervals, dodged by subgroup.

    Non-estimable contrasts are not drawn; they are labeled at zero.
    """
    theme = theme or PlotTheme()
    frame = _pick_comparison(table, comparison)
    visits = list(pd.unique(frame['visit']))
    subgroups = list(pd.unique(frame['subgroup']))
    width = 0.6 / max(len(subgroups), 1)

    fig = Figure(figsize=theme.figsize, dpi=theme.dpi)
    ax = fig.subplots()
    ax.axhline(0.0, color='#555555', linewidth=0.8)

    for j, subgroup in enumerate(subgroups):
        offset = (j - (len(subgroups) - 1) / 2) * width
        color = theme.subgroup_color(subgroup)
        rows = frame[frame['subgroup'] == subgroup]
        x_all = np.array([visits.index(v) for v in rows['visit']]) + offset

        ok = rows['estimable'].to_numpy(dtype=bool)
        est = rows['estimate'].to_numpy()
        yerr = np.vstack([est - rows['lower'].to_numpy(), rows['upper'].to_numpy() - est])
        if ok.any():
            ax.errorbar(x_all[ok], est[ok], yerr=yerr[:, ok], fmt='o', color=color,
                        capsize=4, markersize=6, linewidth=1.6, label=str(subgroup))
        for x in x_all[~ok]:
            ax.annotate(theme.not_estimable_text, (x, 0.0), ha='center', va='bottom',
                        color=color, fontsize=theme.tick_size)

    ax.set_xticks(range(len(visits)))
    ax.set_xticklabels(visits)
    ax.set_xlim(-0.6, len(visits) - 0.4)
    ax.set_ylabel(theme.contrast_label, fontsize=theme.label_size)
    _style_axis(ax, theme)
    ax.legend(frameon=False, fontsize=theme.tick_size)
    fig.suptitle(title, fontsize=theme.title_size)
    return fig


def _headline(rows: pd.DataFrame, visit: str) -> str:
    ok = rows[rows['estimable']]
    benefit = ok[ok['lower'] > 0]['subgroup'].tolist()
    if len(ok) and len(benefit) == len(ok):
        return f"Clear benefit at {visit} in every subgroup"
    if benefit:
        return f"Clear benefit at {visit} only in: {', '.join(map(str, benefit))}"
    return f"No clear benefit at {visit}"


def plot_executive_summary(
    table: ContrastTable,
    theme: Optional[PlotTheme] = None,
    visit: Optional[str] = None,
    comparison: Optional[str] = None,
    headline: Optional[str] = None
) -> Figure:
    """
    Single-message summary: the final-visit effect in each subgroup.

    The headline states the conclusion; the caption states the method.
    """
    theme = theme or PlotTheme()
    frame = _pick_comparison(table, comparison)
    visit = visit if visit is not None else list(pd.unique(frame['visit']))[-1]
    rows = frame[frame['visit'] == visit].reset_index(drop=True)
    if rows.empty:
        raise KeyError(f"Visit '{visit}' not in contrast table")

    fig = Figure(figsize=theme.figsize, dpi=theme.dpi)
    ax = fig.subplots()
    fig.subplots_adjust(top=0.78, bottom=0.2, left=0.25, right=0.95)
    ax.axvline(0.0, color='#555555', linewidth=0.8)

    y = np.arange(len(rows))[::-1]
    for yi, (_, row) in zip(y, rows.iterrows()):
        color = theme.subgroup_color(row['subgroup'])
        if not row['estimable']:
            ax.annotate(theme.not_estimable_text, (0.0, yi), ha='left', va='center',
                        color=color, fontsize=theme.label_size)
            continue
        ax.plot([row['lower'], row['upper']], [yi, yi], color=color, linewidth=3)
        ax.plot(row['estimate'], yi, 'o', color=color, markersize=10)
        ax.annotate(f"{row['estimate']:.1f}  [{row['lower']:.1f}, {row['upper']:.1f}]",
                    (row['upper'], yi), xytext=(8, 0), textcoords='offset points',
                    va='center', fontsize=theme.label_size, color=color)

    ax.set_yticks(y)
    ax.set_yticklabels([str(s) for s in rows['subgroup']], fontsize=theme.label_size)
    ax.set_ylim(-0.8, len(rows) - 0.2)
    ax.set_xlabel(theme.contrast_label.replace('\n', ' '), fontsize=theme.label_size)
    _style_axis(ax, theme)
    ax.grid(False)

    fig.suptitle(headline or _headline(rows, visit), fontsize=theme.title_size,
                 fontweight='bold', x=0.05, ha='left')
    fig.text(0.05, 0.86, f"{rows['comparison'].iloc[0]} at {visit}, by biomarker status",
             fontsize=theme.label_size, ha='left')
    fig.text(0.05, 0.04,
             f"Model-based difference in marginal means (mixed model); "
             f"intervals are estimate +/- {table.multiplier:g} SE.",
             fontsize=theme.tick_size, ha='left', color='#555555')
    return fig


def figure_sequence(
    derived: pd.DataFrame,
    table: ContrastTable,
    theme: Optional[PlotTheme] = None
) -> Dict[str, Figure]:
    """The case-study figures in narrative order."""
    theme = theme or PlotTheme()
    return {
        '01_individual_profiles': plot_individual_profiles(derived, theme),
        '02_mean_profiles': plot_mean_profiles(derived, theme),
        '03_contrasts': plot_contrasts(table, theme),
        '04_executive_summary': plot_executive_summary(table, theme),
    }


def save_figure(fig: Figure, path: Union[str, Path], dpi: Optional[int] = None) -> Path:
    """Write a figure to disk; format follows the file extension."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    fig.savefig(path, dpi=dpi or fig.dpi, bbox_inches='tight')
    return path
