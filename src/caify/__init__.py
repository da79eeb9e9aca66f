"""caify - Content-addressed chunk trees and pull-based synchronization."""

__version__ = "0.1.0"
