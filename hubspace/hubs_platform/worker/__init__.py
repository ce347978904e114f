"""Change feed worker: claims batches and hands them to read-model handlers."""
