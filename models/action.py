"""Action tags accepted by the exchange endpoint."""

from __future__ import annotations

from enum import Enum


class ActionType(str, Enum):
    """Closed set of action ``type`` tags."""

    APPROVE_AGENT = "approveAgent"
    APPROVE_BUILDER_FEE = "approveBuilderFee"
    BATCH_MODIFY = "batchModify"
    CANCEL = "cancel"
    CANCEL_BY_CLOID = "cancelByCloid"
    C_DEPOSIT = "cDeposit"
    CLAIM_REWARDS = "claimRewards"
    CONVERT_TO_MULTI_SIG_USER = "convertToMultiSigUser"
    CREATE_SUB_ACCOUNT = "createSubAccount"
    CREATE_VAULT = "createVault"
    C_SIGNER_ACTION = "CSignerAction"
    C_VALIDATOR_ACTION = "CValidatorAction"
    C_WITHDRAW = "cWithdraw"
    EVM_USER_MODIFY = "evmUserModify"
    MODIFY = "modify"
    MULTI_SIG = "multiSig"
    NOOP = "noop"
    ORDER = "order"
    PERP_DEPLOY = "perpDeploy"
    PERP_DEX_CLASS_TRANSFER = "PerpDexClassTransfer"
    PERP_DEX_TRANSFER = "PerpDexTransfer"
    REGISTER_REFERRER = "registerReferrer"
    RESERVE_REQUEST_WEIGHT = "reserveRequestWeight"
    SCHEDULE_CANCEL = "scheduleCancel"
    SET_DISPLAY_NAME = "setDisplayName"
    SET_REFERRER = "setReferrer"
    SPOT_DEPLOY = "spotDeploy"
    SPOT_SEND = "spotSend"
    SPOT_USER = "spotUser"
    SUB_ACCOUNT_SPOT_TRANSFER = "subAccountSpotTransfer"
    SUB_ACCOUNT_TRANSFER = "subAccountTransfer"
    TOKEN_DELEGATE = "tokenDelegate"
    TWAP_CANCEL = "twapCancel"
    TWAP_ORDER = "twapOrder"
    UPDATE_ISOLATED_MARGIN = "updateIsolatedMargin"
    UPDATE_LEVERAGE = "updateLeverage"
    USD_CLASS_TRANSFER = "usdClassTransfer"
    USD_SEND = "usdSend"
    VAULT_DISTRIBUTE = "vaultDistribute"
    VAULT_MODIFY = "vaultModify"
    VAULT_TRANSFER = "vaultTransfer"
    WITHDRAW3 = "withdraw3"


class ActionKind(str, Enum):
    """Signing strategy for an action."""

    L1 = "l1"  # msgpack hash, phantom-agent EIP-712
    USER_SIGNED = "user_signed"  # direct EIP-712 over the action fields
