"""SSRS report migrator: move report definitions between disk and a report server catalog."""

from .common import __version__
