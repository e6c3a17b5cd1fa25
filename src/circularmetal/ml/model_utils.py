from typing import Any, Dict, Sequence

import numpy as np
import pandas as pd
from sklearn.linear_model import LinearRegression
from sklearn.tree import DecisionTreeRegressor

from circularmetal.backend.model_server import FEATURE_NAMES

CATEGORICAL_COLUMNS = ["material", "product_type", "region"]
ENERGY_TARGET = "energy_kWh_per_kg"
RATE_TARGET = "end_of_life_recycling_rate"


def encode_features(df: pd.DataFrame) -> pd.DataFrame:
    """
    One-hot encodes material/product_type/region with pandas.get_dummies.

    Columns are aligned to FEATURE_NAMES so the exported tree and the
    backend's feature vector use the same names.
    """
    dummies = pd.get_dummies(df[CATEGORICAL_COLUMNS], dtype=int)
    return dummies.reindex(columns=list(FEATURE_NAMES), fill_value=0)


def fit_energy_models(df: pd.DataFrame) -> Dict[str, LinearRegression]:
    """Fits energy ~ recycledContent per material, plus a pooled 'default' model."""
    df_train = df.dropna(subset=["recycledContent", ENERGY_TARGET])

    models = {"default": LinearRegression().fit(df_train[["recycledContent"]], df_train[ENERGY_TARGET])}
    for material, group in df_train.groupby("material"):
        models[str(material).lower()] = LinearRegression().fit(group[["recycledContent"]], group[ENERGY_TARGET])
    return models


def energy_models_to_dict(models: Dict[str, LinearRegression], model_name: str) -> Dict[str, Any]:
    def coeffs(model: LinearRegression) -> Dict[str, float]:
        return {"slope": round(float(model.coef_[0]), 6), "intercept": round(float(model.intercept_), 6)}

    return {
        "model_name": model_name,
        "default": coeffs(models["default"]),
        "materials": {k: coeffs(m) for k, m in models.items() if k != "default"},
    }


def fit_recycling_tree(df: pd.DataFrame, max_depth: int = 4, random_state: int = 42) -> DecisionTreeRegressor:
    """Trains a decision tree predicting the end-of-life recycling rate."""
    df_train = df.dropna(subset=[RATE_TARGET])
    X = encode_features(df_train)
    y = df_train[RATE_TARGET]

    tree = DecisionTreeRegressor(max_depth=max_depth, random_state=random_state)
    tree.fit(X, y)
    return tree


def tree_to_dict(estimator: DecisionTreeRegressor, feature_names: Sequence[str]) -> Dict[str, Any]:
    """
    Converts a fitted sklearn tree into nested {feature, threshold, left, right}
    / {value} objects. Left means `x[feature] <= threshold`, as in sklearn.
    """
    tree = estimator.tree_

    def node(i: int) -> Dict[str, Any]:
        left, right = tree.children_left[i], tree.children_right[i]
        if left == right:  # both -1 on leaves
            return {"value": round(float(np.ravel(tree.value[i])[0]), 6)}
        return {
            "feature": feature_names[tree.feature[i]],
            "threshold": float(tree.threshold[i]),
            "left": node(left),
            "right": node(right),
        }

    return node(0)
