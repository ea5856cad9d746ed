import copy
from unittest import mock

from snoinstaller.lib import redfish
from snoinstaller.lib.process import Cancellation


class FakeController:
    """In-memory stand-in for a RedfishSession talking to an iDRAC."""

    def __init__(self, power_states=('On',), refused_targets=(), failing_actions=()):
        self.host = 'https://idrac.test'
        self.cancel = Cancellation()
        self.requests = []
        self._power_states = list(power_states)
        self._refused_targets = set(refused_targets)
        self._failing_actions = set(failing_actions)

    def without_cancel(self):
        view = copy.copy(self)
        view.cancel = Cancellation()
        return view

    def _refuse(self, method, uri):
        response = mock.Mock(status_code=400)
        response.json.side_effect = ValueError("no body")
        return redfish.StatusException(method, uri, response)

    def get(self, uri):
        self.requests.append(('GET', uri, None))
        if uri == redfish.SYSTEM_ROOT:
            if len(self._power_states) > 1:
                state = self._power_states.pop(0)
            else:
                state = self._power_states[0]
            return {'PowerState': state, 'Status': {'Health': 'OK'}}
        if uri == redfish.VIRTUAL_MEDIA_ROOT:
            return {'Inserted': True, 'Image': 'http://web/agent.iso', 'MediaTypes': ['CD', 'DVD']}
        return {}

    def post(self, uri, data):
        self.requests.append(('POST', uri, data))
        action = uri.rsplit('/', 1)[-1]
        if action in self._failing_actions:
            raise self._refuse('POST', uri)
        return {}

    def patch(self, uri, data):
        self.requests.append(('PATCH', uri, data))
        if data['Boot']['BootSourceOverrideTarget'] in self._refused_targets:
            raise self._refuse('PATCH', uri)
        return {}

    def actions(self):
        return [
            uri.rsplit('/', 1)[-1] if method == 'POST' else data['Boot']['BootSourceOverrideTarget']
            for method, uri, data in self.requests
            if method != 'GET'
            ]

    def power_reads(self):
        return [r for r in self.requests if r[0] == 'GET' and r[1] == redfish.SYSTEM_ROOT]

