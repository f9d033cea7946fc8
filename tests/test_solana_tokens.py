import pytest

from volbot.config.solana_tokens import SOL, target_token


def test_sol_is_wrapped_sol_mint() -> None:
    assert SOL.mint == "So11111111111111111111111111111111111111112"
    assert SOL.decimals == 9
    assert SOL.is_native


def test_target_token_from_mint() -> None:
    token = target_token(" JUPyiwrYJFskUPiHa7hkeR8VUtAeFoSYbKedZNsDvCN ", 6, symbol="JUP")
    assert token.mint == "JUPyiwrYJFskUPiHa7hkeR8VUtAeFoSYbKedZNsDvCN"
    assert token.decimals == 6
    assert not token.is_native


@pytest.mark.parametrize(
    "mint, decimals",
    [
        ("not-a-mint", 6),
        ("So11111111111111111111111111111111111111112", 9),
        ("DezXAZ8z7PnrnRJjz3wXBoRgixCa6xjnB7YaB1pPB263", 19),
    ],
)
def test_target_token_rejects_bad_input(mint: str, decimals: int) -> None:
    with pytest.raises(ValueError):
        target_token(mint, decimals)
