"""Lesson progress tracking and hierarchical rollup."""
