import json
import random
import time


def click(session_id, page_url, selector, timestamp):
    return {
        "sessionId": session_id,
        "pageUrl": page_url,
        "eventType": "click",
        "elementSelector": selector,
        "clickX": random.randint(0, 400),
        "clickY": random.randint(0, 300),
        "timestamp": timestamp,
    }


def scroll(session_id, page_url, depth, timestamp):
    return {
        "sessionId": session_id,
        "pageUrl": page_url,
        "eventType": "scroll",
        "scrollDepth": round(depth, 2),
        "timestamp": timestamp,
    }


def generate_events(base_timestamp: int):
    """One dataset that trips every detector once."""
    events = []

    # 2 of 50 sessions click the CTA: 4% click rate
    for i in range(50):
        events.append(scroll(f"session-low-click-{i}", "/landing-page", random.uniform(20, 100),
                             base_timestamp + i * 60000))
    for i in range(2):
        events.append(click(f"session-low-click-{i}", "/landing-page", "button.cta-primary",
                            base_timestamp + i * 60000 + 30000))

    for i in range(20):
        events.append(scroll(f"session-low-scroll-{i}", "/blog-post", random.uniform(0, 25),
                             base_timestamp + i * 120000))

    rage_timestamp = base_timestamp + 1000000
    for session in range(3):
        for n in range(5):
            events.append(click(f"session-rage-{session}", "/checkout", "button.submit-order",
                                rage_timestamp + session * 300000 + n * 500))

    for i in range(8):
        events.append(click(f"session-dead-{i}", "/product-page", "div.product-image",
                            base_timestamp + i * 90000))

    # 12 of 15 sessions leave within 10 seconds
    for i in range(15):
        start = base_timestamp + i * 200000
        duration = random.randint(1000, 8000) if i < 12 else random.randint(20000, 60000)
        events.append(scroll(f"session-exit-{i}", "/pricing", 10, start))
        events.append(scroll(f"session-exit-{i}", "/pricing", 40, start + duration))

    return {"events": events}


def main():
    base_timestamp = int(time.time() * 1000) - 24 * 60 * 60 * 1000
    data = generate_events(base_timestamp)
    with open("events.json", "w") as f:
        json.dump(data, f, indent=2)


if __name__ == "__main__":
    main()
