"""Asset packager: bundles stylesheet and script packages for static delivery."""

__version__ = "1.2.0"
