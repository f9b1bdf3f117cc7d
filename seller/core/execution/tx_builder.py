"""
Transaction builder for the direct contract calls the executor issues itself.

Route transactions come ready-made from the routing service; everything else
(ERC20 approve/transfer, wrapped-native deposit/withdraw, read calls) is
encoded here.
"""

from typing import Optional

from .models import TransactionType, TxPlan

# Common contract ABIs (minimal for encoding)
ERC20_APPROVE_SELECTOR = "0x095ea7b3"  # approve(address,uint256)
ERC20_TRANSFER_SELECTOR = "0xa9059cbb"  # transfer(address,uint256)
ERC20_BALANCE_OF_SELECTOR = "0x70a08231"  # balanceOf(address)
ERC20_ALLOWANCE_SELECTOR = "0xdd62ed3e"  # allowance(address,address)
WETH_DEPOSIT_SELECTOR = "0xd0e30db0"  # deposit()
WETH_WITHDRAW_SELECTOR = "0x2e1a7d4d"  # withdraw(uint256)

# Maximum uint256 for unlimited approval
MAX_UINT256 = 2**256 - 1


def _encode_uint256(value: int) -> str:
    """Encode a uint256 as a 32-byte hex string (without 0x prefix)."""
    if value < 0 or value > MAX_UINT256:
        raise ValueError(f"uint256 out of range: {value}")
    return format(value, "064x")


def _encode_address(address: str) -> str:
    """Encode an address as a 32-byte hex string (without 0x prefix)."""
    addr = address.lower().replace("0x", "")
    return addr.zfill(64)


def encode_balance_of(owner: str) -> str:
    return ERC20_BALANCE_OF_SELECTOR + _encode_address(owner)


def encode_allowance(owner: str, spender: str) -> str:
    return ERC20_ALLOWANCE_SELECTOR + _encode_address(owner) + _encode_address(spender)


def encode_approve(spender: str, amount: int = MAX_UINT256) -> str:
    return ERC20_APPROVE_SELECTOR + _encode_address(spender) + _encode_uint256(amount)


def encode_transfer(to_address: str, amount: int) -> str:
    return ERC20_TRANSFER_SELECTOR + _encode_address(to_address) + _encode_uint256(amount)


def encode_withdraw(amount: int) -> str:
    return WETH_WITHDRAW_SELECTOR + _encode_uint256(amount)


def decode_uint256(result: Optional[str]) -> int:
    """Decode an ``eth_call`` return value; an empty result reads as zero."""
    if not result or result == "0x":
        return 0
    return int(result, 16)


class TransactionBuilder:
    """
    Builds the executor's own transactions.

    Handles:
    - ERC20 approvals and transfers
    - Native value transfers
    - Wrapped-native deposit (wrap) and withdraw (unwrap)
    """

    @staticmethod
    def build_erc20_approve(
        chain_id: int,
        token_address: str,
        spender_address: str,
        amount: int = MAX_UINT256,
        description: str = "",
    ) -> TxPlan:
        """
        Build an ERC20 approval transaction.

        Args:
            chain_id: The chain ID
            token_address: The ERC20 token contract
            spender_address: The address being approved to spend
            amount: The amount to approve (default: unlimited)
            description: Human-readable description
        """
        return TxPlan(
            tx_type=TransactionType.APPROVE,
            chain_id=chain_id,
            to_address=token_address,
            data=encode_approve(spender_address, amount),
            value=0,
            description=description or f"Approve {spender_address[:10]}... to spend tokens",
        )

    @staticmethod
    def build_erc20_transfer(
        chain_id: int,
        token_address: str,
        to_address: str,
        amount: int,
        description: str = "",
    ) -> TxPlan:
        return TxPlan(
            tx_type=TransactionType.TRANSFER,
            chain_id=chain_id,
            to_address=token_address,
            data=encode_transfer(to_address, amount),
            value=0,
            description=description or f"Transfer tokens to {to_address[:10]}...",
        )

    @staticmethod
    def build_native_transfer(
        chain_id: int,
        to_address: str,
        amount_wei: int,
        description: str = "",
    ) -> TxPlan:
        return TxPlan(
            tx_type=TransactionType.TRANSFER,
            chain_id=chain_id,
            to_address=to_address,
            data="0x",
            value=amount_wei,
            description=description or f"Transfer native token to {to_address[:10]}...",
        )

    @staticmethod
    def build_wrap(chain_id: int, wrapped_address: str, amount_wei: int) -> TxPlan:
        """``deposit()`` on the wrapped-native contract, paying ``amount_wei``."""
        return TxPlan(
            tx_type=TransactionType.WRAP,
            chain_id=chain_id,
            to_address=wrapped_address,
            data=WETH_DEPOSIT_SELECTOR,
            value=amount_wei,
            description="Wrap native token",
        )

    @staticmethod
    def build_unwrap(chain_id: int, wrapped_address: str, amount_wei: int) -> TxPlan:
        """``withdraw(wad)`` on the wrapped-native contract."""
        return TxPlan(
            tx_type=TransactionType.UNWRAP,
            chain_id=chain_id,
            to_address=wrapped_address,
            data=encode_withdraw(amount_wei),
            value=0,
            description="Unwrap to native token",
        )
