"""Window indicators for classifier features."""
