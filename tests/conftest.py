"""
Shared synthetic trials for the test suite.
"""

import warnings
import pandas as pd
import pytest

from pytrialfx import AnalysisConfig, FilterSpec, load_dataset, derive_changes, MixedModel, FitWarning
from pytrialfx.datasets import simulate_trial


@pytest.fixture(scope='session')
def config():
    return AnalysisConfig(filters=FilterSpec(compartment=3, doses=(0, 400), study=1, part=1))


@pytest.fixture(scope='session')
def trial_raw():
    """80 subjects, visits at weeks 0/4/8/12, effect -2 kg at week 12."""
    return simulate_trial(n_per_cell=20, effect=-2.0, seed=20241224)


@pytest.fixture(scope='session')
def trial_derived(trial_raw, config):
    return derive_changes(load_dataset(trial_raw, config))


@pytest.fixture(scope='session')
def trial_model(trial_derived):
    return MixedModel(trial_derived)


@pytest.fixture(scope='session')
def missing_cell_raw(trial_raw):
    """Week-8 records removed for biomarker-negative placebo subjects."""
    drop = ((trial_raw['TRT'] == 'Placebo') & (trial_raw['BIOMARKER'] == 0)
            & (trial_raw['NOMTIME'] == 8 * 168.0))
    return trial_raw.loc[~drop].reset_index(drop=True)


@pytest.fixture
def balanced_raw():
    """
    8 subjects (2 per arm x biomarker cell), baseline + week 12 only.

    Placebo is flat, active is exactly 2 kg lower at week 12 in both
    subgroups. The +/-0.1 kg noise is balanced so that the baseline slope
    is exactly 1.
    """
    cells = [
        # (arm, marker, baselines, noise)
        ('Placebo', 0, (100.0, 104.0), (0.1, -0.1)),
        ('Placebo', 1, (90.0, 94.0), (-0.1, 0.1)),
        ('Active', 0, (98.0, 102.0), (-0.1, 0.1)),
        ('Active', 1, (92.0, 96.0), (0.1, -0.1)),
    ]
    rows = []
    subject = 0
    for arm, marker, baselines, noise in cells:
        effect = -2.0 if arm == 'Active' else 0.0
        dose = 400 if arm == 'Active' else 0
        for base, eps in zip(baselines, noise):
            subject += 1
            common = dict(ID=subject, CMT=3, DOSE=dose, STUDY=1, PART=1,
                          BIOMARKER=marker, TRT=arm)
            rows.append(dict(common, NOMTIME=0.0, PROFDAY=0, DV=base))
            rows.append(dict(common, NOMTIME=12 * 168.0, PROFDAY=84,
                             DV=base + effect + eps))
    return pd.DataFrame(rows)


@pytest.fixture(scope='session')
def missing_cell_model(missing_cell_raw, config):
    derived = derive_changes(load_dataset(missing_cell_raw, config))
    with warnings.catch_warnings():
        warnings.simplefilter('ignore', FitWarning)
        return MixedModel(derived)
