"""Story-point estimation.

Pure functions only: the estimator turns a duration plus two qualitative
levels into a Fibonacci point value and never touches persisted records.
"""
