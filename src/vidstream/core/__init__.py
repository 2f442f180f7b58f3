"""Request delivery core: probing, ranges, transcoding."""
