"""Record linkage of state registry districts to the NCES baseline."""
