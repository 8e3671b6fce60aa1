"""
Test the fixed-effects design: term dropping, aliasing and estimability.
"""

import pytest
import numpy as np
import pandas as pd

from pytrialfx import load_dataset, derive_changes
from pytrialfx._core import (
    build_design,
    build_formula,
    qr_decomposition_with_pivoting,
    null_space_basis,
)
from pytrialfx.contrasts import reference_grid


ROLES = {'baseline': 'baseline', 'visit': 'visit',
         'treatment': 'treatment', 'subgroup': 'subgroup'}


class TestQR:

    def test_full_rank(self):
        rng = np.random.RandomState(1)
        X = np.column_stack([np.ones(20), rng.randn(20), rng.randn(20)])
        decomp = qr_decomposition_with_pivoting(X)
        assert decomp.rank == 3
        assert list(decomp.kept) == [0, 1, 2]
        assert len(decomp.aliased) == 0

    def test_duplicated_column_aliased(self):
        x = np.arange(10, dtype=float)
        X = np.column_stack([np.ones(10), x, x])
        decomp = qr_decomposition_with_pivoting(X)
        assert decomp.rank == 2
        assert len(decomp.aliased) == 1
        assert decomp.aliased[0] in (1, 2)

    def test_null_space(self):
        x = np.arange(10, dtype=float)
        X = np.column_stack([np.ones(10), x, 2 * x])
        N = null_space_basis(X, 2)
        assert N.shape == (3, 1)
        np.testing.assert_allclose(X @ N, 0.0, atol=1e-10)

    def test_null_space_full_rank_is_empty(self):
        X = np.eye(4)
        assert null_space_basis(X, 4).shape == (4, 0)


def test_build_formula_drops_terms():
    full = build_formula('value', ROLES)
    assert full == ("value ~ baseline + visit + treatment + subgroup + baseline:visit"
                    " + treatment:visit + subgroup:treatment + subgroup:visit"
                    " + subgroup:visit:treatment")
    no_visit = build_formula('value', ROLES, ['visit'])
    assert no_visit == "value ~ baseline + treatment + subgroup + subgroup:treatment"
    no_sub = build_formula('value', ROLES, ['subgroup'])
    assert 'subgroup' not in no_sub
    assert 'treatment:visit' in no_sub


class TestBuildDesign:

    def test_full_design(self, trial_derived):
        design = build_design(trial_derived)
        assert design.X.shape == (len(trial_derived), 15)
        assert design.rank == 15
        assert design.aliased == []
        assert design.dropped_factors == []
        assert design.levels['visit'] == ['Week 4', 'Week 8', 'Week 12']
        assert design.levels['treatment'] == ['Placebo', 'Active']
        assert 'Intercept' in design.column_names
        assert 'treatment[T.Active]' in design.column_names

    def test_missing_cell_aliased(self, missing_cell_raw, config):
        derived = derive_changes(load_dataset(missing_cell_raw, config))
        design = build_design(derived)
        assert design.X.shape[1] == 15
        assert design.rank == 14
        assert len(design.aliased) == 1
        assert len(design.kept) == 14

    def test_single_level_subgroup_dropped(self, trial_derived):
        negative = trial_derived[trial_derived['subgroup'] == 'Biomarker negative']
        design = build_design(negative)
        assert design.dropped_factors == ['subgroup']
        assert 'subgroup' not in design.formula
        assert design.X.shape[1] == 9
        assert design.rank == 9

    def test_single_level_treatment_rejected(self, trial_derived):
        placebo = trial_derived[trial_derived['treatment'] == 'Placebo']
        with pytest.raises(ValueError, match="two levels"):
            build_design(placebo)

    def test_nan_response_rejected(self, trial_derived):
        data = trial_derived.copy()
        data.loc[0, 'value'] = np.nan
        with pytest.raises(ValueError, match="NaN"):
            build_design(data)

    def test_missing_column(self, trial_derived):
        with pytest.raises(ValueError, match="not in data"):
            build_design(trial_derived.drop(columns=['baseline']))

    def test_plain_string_factors(self, trial_derived):
        data = trial_derived.copy()
        for col in ('visit', 'treatment', 'subgroup'):
            data[col] = data[col].astype(str)
        design = build_design(data)
        assert design.rank == 15


class TestEstimability:

    def test_grid_rows_match_design(self, trial_model):
        grid = reference_grid(trial_model)
        rows = trial_model.design.rows(grid)
        assert list(rows.columns) == trial_model.design.column_names
        assert len(rows) == 2 * 3 * 2
        assert trial_model.design.is_estimable(rows.to_numpy()).all()

    def test_observed_design_rows_estimable(self, trial_model):
        X = trial_model.design.X.to_numpy()
        assert trial_model.design.is_estimable(X[:10]).all()

    def test_missing_cell_not_estimable(self, missing_cell_raw, config):
        derived = derive_changes(load_dataset(missing_cell_raw, config))
        design = build_design(derived)

        def row(arm, visit, subgroup):
            grid = pd.DataFrame({'treatment': [arm], 'visit': [visit],
                                 'subgroup': [subgroup], 'baseline': [95.0]})
            return design.rows(grid).to_numpy()[0]

        empty = row('Placebo', 'Week 8', 'Biomarker negative')
        assert not design.is_estimable(empty)[0]

        diff = row('Active', 'Week 8', 'Biomarker negative') - empty
        assert not design.is_estimable(diff)[0]

        other = (row('Active', 'Week 8', 'Biomarker positive')
                 - row('Placebo', 'Week 8', 'Biomarker positive'))
        assert design.is_estimable(other)[0]

        week4 = (row('Active', 'Week 4', 'Biomarker negative')
                 - row('Placebo', 'Week 4', 'Biomarker negative'))
        assert design.is_estimable(week4)[0]
