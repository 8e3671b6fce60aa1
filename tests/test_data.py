"""
Test loading, filtering and standardizing raw PK/PD tables.
"""

import json
import pytest
import numpy as np
import pandas as pd
from pathlib import Path

from pytrialfx import AnalysisConfig, FilterSpec, ColumnMap, load_dataset
from pytrialfx.data import filter_observations, standardize, visit_label, CANONICAL_COLUMNS
from pytrialfx.exceptions import DataError, MissingColumnError, UnparseableValueError


FIXTURE = Path(__file__).parent / "fixtures" / "pkpd_small.csv"


def load_raw():
    return pd.read_csv(FIXTURE)


class TestLoadDataset:
    """Reading and filtering the fixture file."""

    def test_filters_applied(self, config):
        obs = load_dataset(FIXTURE, config)

        # Subjects 5 (study 2), 6 (dose 100) and 7 (part 2) are filtered out,
        # as are the compartment-2 concentration rows
        assert sorted(obs['subject'].unique()) == [1, 2, 3, 4]
        assert len(obs) == 12
        assert list(obs.columns) == CANONICAL_COLUMNS

    def test_no_filters_keeps_everything(self):
        obs = load_dataset(FIXTURE, AnalysisConfig())
        assert len(obs) == len(load_raw())

    def test_accepts_dataframe(self, config):
        raw = load_raw()
        obs = load_dataset(raw, config)
        assert len(obs) == 12
        # Input left untouched
        assert len(raw) == 19

    def test_visit_order_follows_time(self, config):
        obs = load_dataset(FIXTURE, config)
        assert list(obs['visit'].cat.categories) == ['Baseline', 'Week 4', 'Week 12']
        assert obs['visit'].cat.ordered

    def test_weeks_from_nominal_hours(self, config):
        obs = load_dataset(FIXTURE, config)
        week12 = obs[obs['visit'] == 'Week 12']
        np.testing.assert_allclose(week12['week'], 12.0)

    def test_treatment_levels_control_first(self, config):
        obs = load_dataset(FIXTURE, config)
        assert list(obs['treatment'].cat.categories) == ['Placebo', 'Active']

    def test_subgroup_labels(self, config):
        obs = load_dataset(FIXTURE, config)
        assert list(obs['subgroup'].cat.categories) == ['Biomarker negative',
                                                        'Biomarker positive']
        s2 = obs[obs['subject'] == 2]
        assert (s2['subgroup'] == 'Biomarker positive').all()
        assert (s2['subgroup_code'] == 1).all()

    def test_custom_delimiter(self, tmp_path, config):
        path = tmp_path / "pkpd.tsv"
        load_raw().to_csv(path, sep='\t', index=False)
        cfg = AnalysisConfig(filters=config.filters, delimiter='\t')
        assert len(load_dataset(path, cfg)) == 12


class TestDataErrors:
    """Explicit, distinguishable failures for bad input."""

    def test_missing_columns_named(self):
        raw = load_raw().drop(columns=['DV', 'TRT'])
        with pytest.raises(MissingColumnError) as exc:
            load_dataset(raw)
        assert exc.value.columns == ['DV', 'TRT']
        assert 'DV' in str(exc.value)

    def test_missing_filter_column(self, config):
        raw = load_raw().drop(columns=['CMT'])
        with pytest.raises(MissingColumnError) as exc:
            load_dataset(raw, config)
        assert exc.value.columns == ['CMT']

    def test_unparseable_value(self):
        raw = load_raw()
        raw['DV'] = raw['DV'].astype(object)
        raw.loc[3, 'DV'] = 'abc'
        with pytest.raises(UnparseableValueError) as exc:
            load_dataset(raw)
        assert exc.value.column == 'DV'
        assert exc.value.values == ['abc']

    def test_missing_value(self):
        raw = load_raw()
        raw.loc[4, 'DV'] = np.nan
        with pytest.raises(UnparseableValueError) as exc:
            load_dataset(raw)
        assert exc.value.column == 'DV'
        assert exc.value.values == [2]

    def test_subgroup_not_binary(self):
        raw = load_raw()
        raw.loc[0, 'BIOMARKER'] = 2
        with pytest.raises(UnparseableValueError) as exc:
            load_dataset(raw)
        assert exc.value.column == 'BIOMARKER'

    def test_control_arm_absent(self):
        raw = load_raw()
        with pytest.raises(DataError, match="Control arm"):
            load_dataset(raw, AnalysisConfig(control='Vehicle'))

    def test_single_arm(self):
        raw = load_raw()
        raw = raw[raw['TRT'] == 'Placebo']
        with pytest.raises(DataError, match="active arm"):
            load_dataset(raw)

    def test_empty_after_filter(self):
        cfg = AnalysisConfig(filters=FilterSpec(compartment=99))
        with pytest.raises(DataError, match="No rows left"):
            load_dataset(load_raw(), cfg)

    def test_data_errors_are_value_errors(self):
        assert issubclass(MissingColumnError, ValueError)
        assert issubclass(UnparseableValueError, DataError)


class TestFilterObservations:

    def test_dose_set(self):
        raw = load_raw()
        out = filter_observations(raw, FilterSpec(doses=(100,)))
        assert set(out['ID']) == {6}

    def test_renamed_columns(self):
        raw = load_raw().rename(columns={'CMT': 'COMPARTMENT'})
        out = filter_observations(raw, FilterSpec(compartment=2),
                                  ColumnMap(compartment='COMPARTMENT'))
        assert len(out) == 2

    def test_returns_copy(self):
        raw = load_raw()
        out = filter_observations(raw, FilterSpec(compartment=3))
        out['DV'] = 0.0
        assert raw['DV'].max() > 0


def test_visit_label():
    assert visit_label(12.0) == 'Week 12'
    assert visit_label(4.0000001) == 'Week 4'
    assert visit_label(2.5) == 'Week 2.5'


def test_standardize_sorts_by_subject_and_time(config):
    raw = filter_observations(load_raw(), config.filters, config.columns)
    obs = standardize(raw, config)
    s1 = obs[obs['subject'] == 1]
    assert list(s1['visit']) == ['Baseline', 'Week 4', 'Week 12']


class TestAnalysisConfig:

    def test_defaults(self):
        cfg = AnalysisConfig()
        assert cfg.ci_multiplier == 1.96
        assert cfg.pct_denominator == 'current'
        assert cfg.benefit_positive

    def test_from_json(self, tmp_path):
        path = tmp_path / "analysis.json"
        path.write_text(json.dumps({
            'filters': {'compartment': 3, 'doses': [0, 400]},
            'ci_multiplier': 1.645,
            'subgroup_labels': {'0': 'G-', '1': 'G+'},
        }))
        cfg = AnalysisConfig.from_json(path)
        assert cfg.filters.compartment == 3
        assert cfg.filters.doses == (0, 400)
        assert cfg.ci_multiplier == 1.645
        assert cfg.subgroup_labels == {0: 'G-', 1: 'G+'}

    def test_unknown_option(self):
        with pytest.raises(ValueError, match="Unknown configuration"):
            AnalysisConfig.from_dict({'alpha': 0.05})

    @pytest.mark.parametrize("options", [
        {'pct_denominator': 'mean'},
        {'random_effects': 'crossed'},
        {'ci_multiplier': 0},
        {'subgroup_labels': {0: 'a', 2: 'b'}},
        {'subgroup_labels': {0: 'a', 1: 'a'}},
    ])
    def test_invalid_options(self, options):
        with pytest.raises(ValueError):
            AnalysisConfig(**options)
