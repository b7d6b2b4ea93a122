"""Credit card analytics: RFM segmentation and descriptive reports."""

__version__ = "0.1.0"
