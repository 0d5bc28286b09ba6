"""Upstream release discovery."""

from bitforge.releases.github import GitHubRelease, ReleaseIndex, rank_releases

__all__ = ["ReleaseIndex", "GitHubRelease", "rank_releases"]
