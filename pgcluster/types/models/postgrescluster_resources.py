class PostgresClusterResources:
    """Encapsulates the naming scheme used for the resources which the operator manages
    for a PostgresCluster."""

    @classmethod
    def leader_endpoints_name(self, cluster_name: str):
        """Returns the name of the Patroni leader `Endpoints` of a cluster."""
        return f"{cluster_name}-ha"

    @classmethod
    def config_endpoints_name(self, cluster_name: str):
        """Returns the name of the Patroni distributed configuration `Endpoints` of a cluster."""
        return f"{cluster_name}-ha-config"

    @classmethod
    def failover_endpoints_name(self, cluster_name: str):
        """Returns the name of the Patroni failover trigger `Endpoints` of a cluster."""
        return f"{cluster_name}-ha-failover"

    @classmethod
    def patroni_endpoints_names(self, cluster_name: str):
        return [
            self.leader_endpoints_name(cluster_name),
            self.config_endpoints_name(cluster_name),
            self.failover_endpoints_name(cluster_name),
        ]

    @classmethod
    def pgupgrade_job_name(self, cluster_name: str):
        return f"{cluster_name}-pgupgrade"

    @classmethod
    def instance_service_account_name(self, cluster_name: str):
        return f"{cluster_name}-instance"

    @classmethod
    def instance_name(self, cluster_name: str, instance_set: str, suffix: str):
        return f"{cluster_name}-{instance_set}-{suffix}"

    @classmethod
    def data_volume_name(self, instance_name: str):
        return f"{instance_name}-pgdata"

    @classmethod
    def wal_volume_name(self, instance_name: str):
        return f"{instance_name}-pgwal"

    @classmethod
    def cluster_certificates_name(self, cluster_name: str):
        return f"{cluster_name}-cluster-cert"

    @classmethod
    def replication_certificates_name(self, cluster_name: str):
        return f"{cluster_name}-replication-cert"
