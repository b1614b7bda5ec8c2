from __future__ import annotations

from dataclasses import replace
import sure

from fleettools.credentials import ServiceIdentity, StaticCredentialProvider, TerminalCredentialProvider

def test_no_service_account_means_default_identity(mocker, fleet_config):
    prompt = mocker.MagicMock()
    provider = TerminalCredentialProvider(fleet_config, prompt=prompt)

    provider.resolve_service_identity().should.be.none
    prompt.assert_not_called()

def test_configured_password_is_used(mocker, fleet_config):
    prompt = mocker.MagicMock()
    config = replace(fleet_config, service_account_username='ci-runner', service_account_password='pw')

    TerminalCredentialProvider(config, prompt=prompt).resolve_service_identity().should.equal(
        ServiceIdentity('ci-runner', 'pw'))
    prompt.assert_not_called()

def test_missing_password_is_prompted_once(mocker, fleet_config):
    prompt = mocker.MagicMock(return_value='typed')
    config = replace(fleet_config, service_account_username='ci-runner', service_account_password='')
    provider = TerminalCredentialProvider(config, prompt=prompt)

    identities = [provider.resolve_service_identity() for _ in range(3)]

    identities.should.equal([ServiceIdentity('ci-runner', 'typed')] * 3)
    prompt.assert_called_once()
    prompt.call_args.args[0].should.contain('ci-runner')

def test_identity_repr_hides_password():
    repr(ServiceIdentity('ci-runner', 'hunter2')).should_not.contain('hunter2')

def test_static_provider():
    identity = ServiceIdentity('svc', 'pw')
    StaticCredentialProvider(identity).resolve_service_identity().should.equal(identity)
    StaticCredentialProvider().resolve_service_identity().should.be.none
