from pgcluster.handlers import probes, postgrescluster

__all__ = ["probes", "postgrescluster"]
