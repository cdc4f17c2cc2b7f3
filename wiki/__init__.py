"""Wiki API client and response models."""
