from .resources import ResourceInspector, AccountResourceSnapshot
from .fee_estimator import FeeEstimator, NetworkFeeSnapshot

__all__ = [
    'ResourceInspector',
    'AccountResourceSnapshot',
    'FeeEstimator',
    'NetworkFeeSnapshot',
]
