import asyncio

from companion_sdk import ChatBridge, ServiceSupervisor


async def main():
    async with ServiceSupervisor() as supervisor:
        bridge = ChatBridge(supervisor=supervisor)
        try:
            await bridge.send_chat(
                "openAI",
                "gpt-4o-mini",
                [{"role": "user", "content": "How tall is Michael Jordan?"}],
                on_text=lambda text: None,
                on_final=lambda text, tool_call: print(text),
                on_error=lambda message: print(f"error: {message}"),
            )
        finally:
            await bridge.aclose()


asyncio.run(main())
