"""Live session analytics: state, reducer, pause detector, metrics, lifecycle.

The reducer, detector and metrics functions are pure transformations over a
``SessionState`` supplied by ``SessionController``; they never keep references
across calls.
"""
