"""Business-rule rejections raised by the claim flow."""


class ClaimRejectedError(ValueError):
    """A claim that cannot proceed. The message is shown to the player."""


class RewardNotFoundError(ClaimRejectedError):
    def __init__(self) -> None:
        super().__init__("Reward not found or access denied")


class AlreadyClaimedError(ClaimRejectedError):
    def __init__(self) -> None:
        super().__init__("Reward already claimed")


class ClaimsDisabledError(ClaimRejectedError):
    def __init__(self) -> None:
        super().__init__("Claims are currently disabled for this season")


class ClaimInProgressError(ClaimRejectedError):
    def __init__(self) -> None:
        super().__init__("Claim already in progress")


class InsufficientTreasuryError(ClaimRejectedError):
    def __init__(self, balance_lamports: int) -> None:
        self.balance_lamports = balance_lamports
        super().__init__(f"Treasury Insufficient SOL: Has {balance_lamports / 1e9} SOL")


class TransferFailedError(ClaimRejectedError):
    """The on-chain transfer could not be completed."""


class TreasuryMisconfiguredError(ClaimRejectedError):
    """The reward token points at a treasury this server cannot sign for."""
