"""ABI encoding for the pool contract's getFundComposition and exchange methods."""

from eth_abi import decode, encode
from eth_abi.exceptions import DecodingError, EncodingError
from eth_utils import decode_hex, keccak, to_checksum_address

from dhtrader import codec
from dhtrader.errors import DecodeError, EncodeError
from dhtrader.models import Asset, Swap, Symbol

COMPOSITION_SIGNATURE = "getFundComposition()"
COMPOSITION_TYPES = ["bytes32[]", "uint256[]", "uint256[]"]

EXCHANGE_SIGNATURE = "exchange(bytes32,uint256,bytes32)"
EXCHANGE_TYPES = ["bytes32", "uint256", "bytes32"]


def function_selector(signature: str) -> bytes:
    return keccak(text=signature)[:4]


class PoolContract:
    """Calldata builder and result decoder for one pool contract."""

    def __init__(self, address: str):
        self._address = to_checksum_address(address)

    @property
    def address(self) -> str:
        return self._address

    def composition_call(self) -> dict:
        """Parameters for an eth_call to getFundComposition()."""
        return {
            "to": self._address,
            "data": "0x" + function_selector(COMPOSITION_SIGNATURE).hex(),
        }

    def decode_composition(self, result: str) -> dict[Symbol, Asset]:
        """Decode the (bytes32[], uint256[], uint256[]) return value into a snapshot."""
        try:
            symbols, balances, rates = decode(COMPOSITION_TYPES, decode_hex(result))
        except (DecodingError, ValueError, TypeError) as e:
            raise DecodeError(f"Cannot decode getFundComposition result: {e}") from e
        return codec.decode_composition(symbols, balances, rates)

    def exchange_data(self, swap: Swap) -> str:
        """Calldata for exchange(fromAsset, fromAmount, toAsset)."""
        args = [
            codec.encode_symbol(swap.from_symbol),
            codec.encode_fixed(swap.from_amount),
            codec.encode_symbol(swap.to_symbol),
        ]
        try:
            encoded = encode(EXCHANGE_TYPES, args)
        except EncodingError as e:
            raise EncodeError(f"Cannot encode exchange call for {swap}: {e}") from e
        return "0x" + (function_selector(EXCHANGE_SIGNATURE) + encoded).hex()
