"""Ad-hoc trust signing of application containers."""

from appdist.signing.signer import SigningOptions, SigningOutcome, sign_container

__all__ = ["SigningOptions", "SigningOutcome", "sign_container"]
