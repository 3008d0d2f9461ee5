from .rotator import CredentialPool, CredentialRotator, OWNER_BINDING, SIGNER_BINDING

__all__ = ['CredentialPool', 'CredentialRotator', 'OWNER_BINDING', 'SIGNER_BINDING']
