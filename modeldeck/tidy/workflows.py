"""Workflows bundle a preprocessor (recipe or formula) with a model spec."""

import copy

import pandas as pd

from .parsnip import ModelFit, ModelSpec
from .recipes import Recipe, parse_formula


class Workflow:
    """Preprocessor plus model. ``fit`` returns a new, trained workflow."""

    def __init__(self):
        self.recipe: Recipe | None = None
        self.formula: str | None = None
        self.spec: ModelSpec | None = None
        self.prepped: Recipe | None = None
        self.fit_: ModelFit | None = None

    def _copy(self) -> "Workflow":
        wf = copy.copy(self)
        wf.prepped = None
        wf.fit_ = None
        return wf

    # -- composition ------------------------------------------------------------

    def add_recipe(self, recipe: Recipe) -> "Workflow":
        if not isinstance(recipe, Recipe):
            raise TypeError(f"add_recipe needs a Recipe, got {type(recipe).__name__}")
        if self.formula is not None:
            raise ValueError("A workflow takes a recipe or a formula, not both")
        wf = self._copy()
        wf.recipe = recipe
        return wf

    def add_formula(self, formula: str) -> "Workflow":
        if self.recipe is not None:
            raise ValueError("A workflow takes a recipe or a formula, not both")
        wf = self._copy()
        wf.formula = formula
        return wf

    def remove_recipe(self) -> "Workflow":
        wf = self._copy()
        wf.recipe = None
        return wf

    def remove_formula(self) -> "Workflow":
        wf = self._copy()
        wf.formula = None
        return wf

    def add_model(self, spec: ModelSpec) -> "Workflow":
        if not isinstance(spec, ModelSpec):
            raise TypeError(f"add_model needs a model spec, got {type(spec).__name__}")
        if self.spec is not None:
            raise ValueError("The workflow already has a model; use update_model")
        wf = self._copy()
        wf.spec = spec
        return wf

    def update_model(self, spec: ModelSpec) -> "Workflow":
        if not isinstance(spec, ModelSpec):
            raise TypeError(f"update_model needs a model spec, got {type(spec).__name__}")
        wf = self._copy()
        wf.spec = spec
        return wf

    # -- fitting and prediction ---------------------------------------------------

    @property
    def is_trained(self) -> bool:
        return self.fit_ is not None

    @property
    def outcome(self) -> str:
        if self.recipe is not None:
            return self.recipe.outcomes[0]
        if self.formula is not None:
            return self.formula.split("~", 1)[0].strip()
        raise ValueError("The workflow has no preprocessor")

    def _check_complete(self):
        if self.spec is None:
            raise ValueError("The workflow has no model; add one with add_model")
        if self.recipe is None and self.formula is None:
            raise ValueError("The workflow has no preprocessor; add a recipe or a formula")

    def fit(self, data: pd.DataFrame) -> "Workflow":
        self._check_complete()
        wf = self._copy()
        if self.recipe is not None:
            if len(self.recipe.outcomes) != 1:
                raise ValueError("The recipe must have exactly one outcome")
            wf.prepped = self.recipe.prep(data)
            baked = wf.prepped.bake()
            outcome = wf.prepped.outcomes[0]
            wf.fit_ = self.spec.fit_xy(baked.drop(columns=[outcome]), baked[outcome])
        else:
            outcomes, predictors = parse_formula(self.formula, data.columns)
            if len(outcomes) != 1:
                raise ValueError("The formula must have exactly one outcome")
            wf.fit_ = self.spec.fit_xy(data[predictors], data[outcomes[0]])
        return wf

    def predict(self, new_data: pd.DataFrame, type: str | None = None) -> pd.DataFrame:
        if not self.is_trained:
            raise ValueError("The workflow must be fit before predict")
        if self.prepped is not None:
            new_data = self.prepped.bake(new_data)
        return self.fit_.predict(new_data, type=type)

    def extract_fit(self) -> ModelFit:
        if not self.is_trained:
            raise ValueError("The workflow has not been fit")
        return self.fit_

    def extract_fit_engine(self):
        return self.extract_fit().extract_fit_engine()

    def extract_recipe(self) -> Recipe:
        if self.prepped is None:
            raise ValueError("The workflow has no prepped recipe; fit it with a recipe first")
        return self.prepped

    def extract_spec(self) -> ModelSpec:
        if self.spec is None:
            raise ValueError("The workflow has no model")
        return self.spec

    def __repr__(self) -> str:
        status = " [trained]" if self.is_trained else ""
        if self.recipe is not None:
            pre = f"Recipe ({len(self.recipe.steps)} steps)"
        elif self.formula is not None:
            pre = f"Formula: {self.formula}"
        else:
            pre = "None"
        model = f"{self.spec.model} ({self.spec.mode}, {self.spec.engine})" if self.spec else "None"
        return f"== Workflow{status} ==\nPreprocessor: {pre}\nModel: {model}"


def workflow(preprocessor=None, spec: ModelSpec | None = None) -> Workflow:
    """New workflow, optionally with a recipe/formula and a model already added."""
    wf = Workflow()
    if isinstance(preprocessor, Recipe):
        wf = wf.add_recipe(preprocessor)
    elif isinstance(preprocessor, str):
        wf = wf.add_formula(preprocessor)
    elif preprocessor is not None:
        raise TypeError("preprocessor must be a Recipe or a formula string")
    if spec is not None:
        wf = wf.add_model(spec)
    return wf
