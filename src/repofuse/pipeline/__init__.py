"""Job scheduling and the pipeline driver."""
