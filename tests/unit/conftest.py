# Environment must be in place before any cinestream module reads settings
import support  # noqa: F401
