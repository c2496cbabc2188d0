"""moka: test-outcome and coverage trees for Gradle builds."""

__version__ = "0.2.0"
