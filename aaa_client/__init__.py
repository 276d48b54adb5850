"""Client core for the AAA assistant: chat stream segmentation and push notifications."""
