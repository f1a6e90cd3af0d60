import unittest
from types import SimpleNamespace
from unittest.mock import Mock, patch

from botocore.exceptions import ClientError

from schedule_api.core.normalize import client_ip_from_request
from schedule_api.services import org


class TestClientIp(unittest.TestCase):
    def test_prefers_forwarded_for(self):
        req = SimpleNamespace(headers={"x-forwarded-for": "203.0.113.5, 10.0.0.1"}, client=SimpleNamespace(host="10.0.0.9"))
        self.assertEqual(client_ip_from_request(req), "203.0.113.5")

    def test_falls_back_to_client_host(self):
        req = SimpleNamespace(headers={}, client=SimpleNamespace(host="10.0.0.9"))
        self.assertEqual(client_ip_from_request(req), "10.0.0.9")
        self.assertEqual(client_ip_from_request(SimpleNamespace(headers={}, client=None)), "0.0.0.0")


class TestOrgAttribution(unittest.TestCase):
    def test_reads_profile(self):
        profile = Mock()
        profile.get_item.return_value = {"Item": {"user_sub": "user", "department_id": "d1", "office_id": "o1"}}
        with patch.object(org, "T", SimpleNamespace(profile=profile)):
            self.assertEqual(
                org.get_org_attribution("user"),
                {"department_id": "d1", "office_id": "o1", "division_id": None},
            )

    def test_missing_profile_or_error(self):
        profile = Mock()
        profile.get_item.return_value = {}
        with patch.object(org, "T", SimpleNamespace(profile=profile)):
            self.assertEqual(set(org.get_org_attribution("user").values()), {None})
        profile.get_item.side_effect = ClientError({"Error": {"Code": "ResourceNotFoundException"}}, "GetItem")
        with patch.object(org, "T", SimpleNamespace(profile=profile)):
            self.assertEqual(set(org.get_org_attribution("user").values()), {None})
