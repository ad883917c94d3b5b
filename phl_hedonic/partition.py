"""
Select the records used for modeling and split them into stratified
training and test sets.
"""

import logging

import pandas as pd
from sklearn.model_selection import train_test_split

from phl_hedonic import config

logger = logging.getLogger(__name__)


def modeling_set(records, features=config.MODEL_FEATURES,
                 label_col=config.LABEL_COL, price_col=config.PRICE_COL):
    """
    Records labelled for modeling that carry a positive sale price and a
    value for every model feature. Incomplete rows are dropped and counted.
    """
    mask = (records[label_col] == config.MODEL_LABEL) & (records[price_col] > 0)
    labelled = records[mask]

    complete = labelled[list(features) + [price_col]].notna().all(axis=1)
    n_dropped = int((~complete).sum())
    if n_dropped:
        logger.warning("Dropped %d modeling records with missing model inputs", n_dropped)
    return labelled[complete].copy()


def challenge_set(records, label_col=config.LABEL_COL):
    return records[records[label_col] == config.CHALLENGE_LABEL].copy()


def fill_missing(records, reference, features=config.MODEL_FEATURES):
    """
    Copy of `records` with missing feature values replaced by the median of
    that feature in `reference` (0 where the reference has no values).
    """
    records = records.copy()
    for col in features:
        missing = records[col].isna()
        if not missing.any():
            continue
        median = pd.to_numeric(reference[col], errors="coerce").median()
        fill = 0.0 if pd.isna(median) else float(median)
        records[col] = records[col].astype(float).fillna(fill)
        logger.info("Filled %d missing %s values with %.2f", int(missing.sum()), col, fill)
    return records


def stratum_labels(records, columns, other="other"):
    """
    Joint label of the stratum columns, e.g. "3|4". Strata with a single
    member are pooled into `other`; if that pool is itself a single record it
    joins the largest stratum, so every label has at least two members.
    """
    labels = records[columns].astype(str).agg("|".join, axis=1)
    sizes = labels.map(labels.value_counts())
    labels = labels.where(sizes >= 2, other)

    counts = labels.value_counts()
    if counts.get(other, 0) == 1 and len(counts) > 1:
        largest = counts.drop(other).idxmax()
        labels = labels.replace(other, largest)
    return labels


def stratified_split(records, columns=config.STRATUM_COLS,
                     test_size=config.TEST_SIZE, random_state=config.RANDOM_STATE):
    """
    Train/test split preserving the share of each stratum in both halves.
    Returns (train, test); together they hold every input row exactly once.
    """
    strata = stratum_labels(records, columns)
    train, test = train_test_split(
        records, test_size=test_size, random_state=random_state, stratify=strata)

    logger.info("Split %d records into %d train / %d test across %d strata",
                len(records), len(train), len(test), strata.nunique())
    return train.copy(), test.copy()
