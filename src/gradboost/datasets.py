"""Flat-file dataset loading."""

from pathlib import Path
from typing import Any, Optional, Sequence, Tuple, Union
import numpy as np
import pandas as pd

from .exceptions import InputError


def load_csv_dataset(
    path: Union[str, Path],
    label_column: Union[str, int] = -1,
    feature_columns: Optional[Sequence[Union[str, int]]] = None,
    positive_label: Optional[Any] = None,
    header: Union[int, str, None] = "infer"
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Read a CSV file into an instance matrix and a label vector.

    Args:
        path: CSV file.
        label_column: Name or position of the label column (default: last).
        feature_columns: Names or positions of feature columns
            (default: every column except the label).
        positive_label: If given, labels become 1.0 where equal to it, else 0.0.
        header: Passed to ``pandas.read_csv``.

    Returns:
        (instances, labels) as float arrays.
    """
    frame = pd.read_csv(path, header=header)

    label_name = frame.columns[label_column] if isinstance(label_column, int) else label_column
    if label_name not in frame.columns:
        raise InputError(f"Label column {label_column!r} not found in {path}")

    if feature_columns is None:
        feature_names = [c for c in frame.columns if c != label_name]
    else:
        feature_names = [
            frame.columns[c] if isinstance(c, int) else c for c in feature_columns
        ]

    try:
        instances = frame[feature_names].to_numpy(dtype=float)
    except (KeyError, ValueError) as exc:
        raise InputError(f"Feature columns of {path} are not numeric: {exc}") from exc

    raw_labels = frame[label_name]
    if positive_label is not None:
        labels = (raw_labels == positive_label).to_numpy(dtype=float)
    else:
        try:
            labels = raw_labels.to_numpy(dtype=float)
        except ValueError as exc:
            raise InputError(
                f"Label column {label_name!r} is not numeric; pass positive_label"
            ) from exc

    return instances, labels
