"""Shared data model helpers."""

from feedrec.data_model.base import StrictBaseModel


__all__ = ["StrictBaseModel"]
