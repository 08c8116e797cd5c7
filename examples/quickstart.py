"""
multimind quickstart — One message through the request engine.

Prerequisites:
    pip install multimind-gateway
    export OPENAI_API_KEY=sk-...
"""

import asyncio

from multimind import APIError, ClientFactory, EnvCredentialStore, RequestQueueEngine, describe_error


async def main():
    factory = ClientFactory(EnvCredentialStore())
    engine = RequestQueueEngine(factory)

    try:
        async with engine:
            try:
                result = await engine.handle_request(
                    "What is the capital of France?",
                    "gpt-3.5-turbo",
                    "openai",
                )
            except APIError as e:
                print(f"Error: {describe_error(e, 'OpenAI')}")
                return

            print(f"Response: {result.result.response}")
            if result.result.usage:
                print(f"Tokens: {result.result.usage.total_tokens}")
    finally:
        await factory.close()


if __name__ == "__main__":
    asyncio.run(main())
