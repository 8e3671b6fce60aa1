"""
Synthetic PK/PD weight trials.

Generates raw tables in the layout ``load_dataset`` expects (default
``ColumnMap`` names), with known treatment effects, for tests and the
case-study demo.
"""

import numpy as np
import pandas as pd
from typing import Sequence


def simulate_trial(
    n_per_cell: int = 10,
    weeks: Sequence[float] = (0, 4, 8, 12),
    effect: float = -2.0,
    subgroup_effect: float = 0.0,
    placebo_slope: float = 0.0,
    baseline_mean: float = 95.0,
    baseline_sd: float = 12.0,
    subject_sd: float = 1.0,
    slope_sd: float = 0.05,
    residual_sd: float = 0.5,
    control: str = 'Placebo',
    active: str = 'Active',
    compartment: int = 3,
    dose: int = 400,
    study: int = 1,
    part: int = 1,
    pk_rows: bool = True,
    seed: int = 20241224,
) -> pd.DataFrame:
    """
    Simulate body weight in a placebo-controlled trial stratified by a
    binary biomarker.

    Parameters
    ----------
    n_per_cell : int
        Subjects per arm x biomarker cell
    weeks : sequence of float
        Visit schedule; the first entry is the baseline visit
    effect : float
        Active minus placebo weight change at the last visit (kg),
        reached linearly over time
    subgroup_effect : float
        Additional effect in biomarker-positive subjects
    placebo_slope : float
        Weight change per week on placebo
    baseline_mean, baseline_sd : float
        Baseline weight distribution
    subject_sd, slope_sd : float
        Per-subject random intercept and slope (per week) SDs
    residual_sd : float
        Within-subject noise
    compartment, dose, study, part : int
        Identifiers written to the filter columns (placebo has dose 0)
    pk_rows : bool
        Also emit concentration rows in compartment 2 (filtered out by a
        compartment filter)
    seed : int
        Seed of the local random generator

    Returns
    -------
    DataFrame
        Columns ID, CMT, DOSE, STUDY, PART, NOMTIME, PROFDAY, DV,
        BIOMARKER, TRT
    """
    rng = np.random.RandomState(seed)
    weeks = list(weeks)
    last = max(weeks[-1] - weeks[0], 1e-12)

    rows = []
    subject = 0
    for arm in (control, active):
        for marker in (0, 1):
            for _ in range(n_per_cell):
                subject += 1
                base = rng.normal(baseline_mean, baseline_sd)
                intercept = rng.normal(0.0, subject_sd)
                slope = rng.normal(0.0, slope_sd)

                for week in weeks:
                    elapsed = week - weeks[0]
                    if elapsed == 0:
                        value = base
                    else:
                        drift = intercept + (slope + placebo_slope) * elapsed
                        if arm == active:
                            drift += (effect + marker * subgroup_effect) * elapsed / last
                        value = base + drift + rng.normal(0.0, residual_sd)

                    common = {
                        'ID': subject,
                        'DOSE': 0 if arm == control else dose,
                        'STUDY': study,
                        'PART': part,
                        'NOMTIME': week * 168.0,
                        'PROFDAY': int(round(elapsed * 7)),
                        'BIOMARKER': marker,
                        'TRT': arm,
                    }
                    rows.append(dict(common, CMT=compartment, DV=round(value, 3)))
                    if pk_rows and arm == active and elapsed > 0:
                        conc = rng.lognormal(np.log(dose / 10.0), 0.3)
                        rows.append(dict(common, CMT=2, DV=round(conc, 3)))

    columns = ['ID', 'CMT', 'DOSE', 'STUDY', 'PART', 'NOMTIME', 'PROFDAY',
               'DV', 'BIOMARKER', 'TRT']
    return pd.DataFrame(rows, columns=columns)
