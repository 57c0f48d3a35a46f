"""Errors raised by the heart pipeline layers."""


class PipelineError(Exception):
    """Base class for pipeline failures."""


class LoadError(PipelineError):
    """Raw input is missing, lacks a column, or holds an uncastable value."""


class QueryError(PipelineError):
    """A KPI query could not run, usually because heart has not been built."""


class EmptyResultWarning(UserWarning):
    """A KPI returned no rows because nothing met its support floor."""
