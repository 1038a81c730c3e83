"""Unit tests for Patroni role decoding."""

import pytest
from pgcluster.common.models.labels import Labels
from pgcluster.common.models.role import (
    STATUS_ANNOTATION,
    Role,
    pod_label_role,
    pod_status_role,
)


class TestRoleFromStr:
    """Tests for mapping Patroni role spellings."""

    @pytest.mark.parametrize("value", ["master", "primary", "leader", "Master", " primary "])
    def test_primary(self, value):
        assert Role.from_str(value) is Role.PRIMARY

    @pytest.mark.parametrize("value", ["replica", "standby", "sync_standby"])
    def test_replica(self, value):
        assert Role.from_str(value) is Role.REPLICA

    def test_standby_leader(self):
        assert Role.from_str("standby_leader") is Role.STANDBY_PRIMARY
        assert Role.STANDBY_PRIMARY.known

    @pytest.mark.parametrize("value", [None, "", "pgdata", 42, ["master"]])
    def test_unknown(self, value):
        role = Role.from_str(value)
        assert role is Role.UNKNOWN
        assert not role.known


class TestRoleFromStatus:
    """Tests for decoding the Patroni status annotation."""

    def test_role(self):
        assert Role.from_status('{"role": "master", "state": "running"}') is Role.PRIMARY

    @pytest.mark.parametrize(
        "status", [None, "", "{", "[]", '"master"', "{}", '{"role": null}']
    )
    def test_unreadable(self, status):
        assert Role.from_status(status) is Role.UNKNOWN

    def test_from_annotations(self):
        assert Role.from_annotations({STATUS_ANNOTATION: '{"role":"replica"}'}) is Role.REPLICA
        assert Role.from_annotations(None) is Role.UNKNOWN


class TestPodRole:
    """Tests for reading the role of a pod."""

    def test_label_and_status_are_independent(self, make_pod):
        pod = make_pod(role_label="replica", status_role="master")
        assert pod_label_role(pod) is Role.REPLICA
        assert pod_status_role(pod) is Role.PRIMARY

    def test_missing_metadata(self, make_pod):
        pod = make_pod()
        pod.metadata = None
        assert pod_label_role(pod) is Role.UNKNOWN
        assert pod_status_role(pod) is Role.UNKNOWN

    def test_volume_role_is_not_a_patroni_role(self):
        assert Role.from_labels({Labels.ROLE_LABEL: Labels.ROLE_PGDATA}) is Role.UNKNOWN
