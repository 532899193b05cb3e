from fractions import Fraction
from typing import Annotated, Self

from eth_typing import ChecksumAddress
from pydantic import AfterValidator, BaseModel, Field, model_validator

from ammsync.constants import MAX_UINT8, MAX_UINT128, MIN_UINT8, MIN_UINT128
from ammsync.exceptions.liquidity_pool import LiquidityPoolError, UnknownTokenError
from ammsync.functions import get_checksum_address
from ammsync.uniswap_v2.functions import constant_product_calc_exact_in
from ammsync.uniswap_v2.types import UniswapV2PoolSyncUpdate

type Address = Annotated[str, AfterValidator(get_checksum_address)]
type Decimals = Annotated[int, Field(ge=MIN_UINT8, le=MAX_UINT8)]
type Reserves = Annotated[int, Field(ge=MIN_UINT128, le=MAX_UINT128)]

DEFAULT_FEE = 300


class UniswapV2Pool(BaseModel):
    """
    A two-token constant product (x*y=k) liquidity pool.

    The token order follows the on-chain `token0` / `token1` assignment reported by the pool. The
    fee is expressed in parts per ten thousand, e.g. 300 = 0.3%.
    """

    address: Address
    token_a: Address
    token_b: Address
    token_a_decimals: Decimals
    token_b_decimals: Decimals
    reserve_a: Reserves
    reserve_b: Reserves
    fee: Annotated[int, Field(ge=0, lt=10_000)] = DEFAULT_FEE
    eth_value: Annotated[int, Field(ge=0)] = 0

    @model_validator(mode="after")
    def check_distinct_tokens(self) -> Self:
        if self.token_a == self.token_b:
            msg = f"Pool {self.address} must hold two distinct tokens, got {self.token_a} twice"
            raise ValueError(msg)
        return self

    def __str__(self) -> str:
        return f"{self.address} ({self.token_a}-{self.token_b})"

    @property
    def tokens(self) -> tuple[ChecksumAddress, ChecksumAddress]:
        return ChecksumAddress(self.token_a), ChecksumAddress(self.token_b)

    def get_token_out(self, token_in: str) -> ChecksumAddress:
        """
        Get the token received when selling `token_in` to the pool.
        """

        token_in = get_checksum_address(token_in)
        if token_in == self.token_a:
            return ChecksumAddress(self.token_b)
        if token_in == self.token_b:
            return ChecksumAddress(self.token_a)
        raise UnknownTokenError(pool=self.address, token=token_in)

    def get_reserves_for(self, token_in: str) -> tuple[int, int]:
        """
        Get the reserves as a (reserves_in, reserves_out) tuple for a swap selling `token_in`.
        """

        token_in = get_checksum_address(token_in)
        if token_in == self.token_a:
            return self.reserve_a, self.reserve_b
        if token_in == self.token_b:
            return self.reserve_b, self.reserve_a
        raise UnknownTokenError(pool=self.address, token=token_in)

    def simulate_swap(self, token_in: str, amount_in: int) -> int:
        """
        Calculate the output of selling `amount_in` of `token_in`, without modifying the pool.
        """

        reserves_in, reserves_out = self.get_reserves_for(token_in)
        return constant_product_calc_exact_in(
            amount_in=amount_in,
            reserves_in=reserves_in,
            reserves_out=reserves_out,
            fee=self.fee,
        )

    def simulate_swap_mut(self, token_in: str, amount_in: int) -> int:
        """
        Calculate the output of selling `amount_in` of `token_in` and apply the swap to the pool
        reserves.
        """

        token_out = self.get_token_out(token_in)
        amount_out = self.simulate_swap(token_in, amount_in)

        if token_out == self.token_b:
            self.update_reserves(self.reserve_a + amount_in, self.reserve_b - amount_out)
        else:
            self.update_reserves(self.reserve_a - amount_out, self.reserve_b + amount_in)

        return amount_out

    def update_reserves(self, reserve_a: int, reserve_b: int) -> None:
        if not all(MIN_UINT128 <= reserve <= MAX_UINT128 for reserve in (reserve_a, reserve_b)):
            raise LiquidityPoolError(
                message=f"Reserves ({reserve_a}, {reserve_b}) are out of range for {self.address}"
            )
        self.reserve_a = reserve_a
        self.reserve_b = reserve_b

    def apply_sync_update(self, update: UniswapV2PoolSyncUpdate) -> None:
        if update.address != self.address:
            raise LiquidityPoolError(
                message=f"Sync update for {update.address} cannot be applied to {self.address}"
            )
        self.update_reserves(update.reserves_token0, update.reserves_token1)

    def get_nominal_price(self, token: str) -> Fraction:
        """
        Get the nominal price of `token` in units of the other token, adjusted for decimals.
        """

        token = get_checksum_address(token)
        if self.reserve_a == 0 or self.reserve_b == 0:
            raise LiquidityPoolError(message=f"Pool {self.address} has no liquidity")

        price_a = Fraction(self.reserve_b, 10**self.token_b_decimals) / Fraction(
            self.reserve_a, 10**self.token_a_decimals
        )
        if token == self.token_a:
            return price_a
        if token == self.token_b:
            return 1 / price_a
        raise UnknownTokenError(pool=self.address, token=token)
