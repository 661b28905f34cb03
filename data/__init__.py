"""Data subpackage: event-derived labels and folds, splits, and resampling."""

from .events import (
    create_targets,
    filter_events,
    make_event_index,
    make_selector,
    make_train_index,
)
from .splits import FoldSplit, leave_one_fold_out_splits
from .resample import SAMPLING_MODES, normalise_sampling, resample_groups
