FEE_DENOMINATOR = 1_000


def fee_numerator(fee: int) -> int:
    """
    Convert a fee in parts per ten thousand (e.g. 300 = 0.3%) to the numerator of the fee-adjusted
    input multiplier over a denominator of 1000, e.g. 997 for a 0.3% fee.
    """

    return (10_000 - fee // 10) // 10


def constant_product_calc_exact_in(
    amount_in: int,
    reserves_in: int,
    reserves_out: int,
    fee: int,
) -> int:
    """
    Calculate the amount out for an exact input from a constant product (x*y=k) invariant pool.

    An empty pool or a zero input produces zero output.
    """

    if amount_in == 0 or reserves_in == 0 or reserves_out == 0:
        return 0

    amount_in_with_fee = amount_in * fee_numerator(fee)
    return (amount_in_with_fee * reserves_out) // (
        reserves_in * FEE_DENOMINATOR + amount_in_with_fee
    )
